"""Plot the CSVs written by export_index_stats / export_pagerank_csv.

    python manage.py export_index_stats --out-dir stats
    python manage.py export_pagerank_csv --out stats/pagerank.csv
    python tools/plot_index_stats.py stats
"""
import os
import sys

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import pandas as pd

# ===============================
# input files (inside the stats directory)
# ===============================

CSV_DOCS = "index_document_stats.csv"
CSV_VOCAB = "vocab_stats.csv"
CSV_PAGERANK = "pagerank.csv"


def plot_hist(series, title, xlabel, out_path, bins=50, log=False):
    plt.figure(figsize=(8, 5))
    plt.hist(series.dropna(), bins=bins, edgecolor="black", log=log)
    plt.title(title)
    plt.xlabel(xlabel)
    plt.ylabel("Frequency")
    plt.grid(alpha=0.3)

    plt.savefig(out_path, dpi=300)
    plt.close()
    print(f"Saved: {out_path}")
    return out_path


def main(base_dir="stats"):
    out_dir = os.path.join(base_dir, "graph")
    os.makedirs(out_dir, exist_ok=True)
    written = []

    # 1) document length (normalized tokens)
    docs = pd.read_csv(os.path.join(base_dir, CSV_DOCS))
    written.append(plot_hist(docs["token_count"], "Document length (normalized tokens)",
                             "Number of tokens", os.path.join(out_dir, "token_count_hist.png")))

    # 2) sparsity
    written.append(plot_hist(docs["sparsity_percent"], "Share of the vocabulary used per document (%)",
                             "Sparsity (%)", os.path.join(out_dir, "sparsity_hist.png")))

    # 3) document frequency, heavy tailed
    vocab = pd.read_csv(os.path.join(base_dir, CSV_VOCAB))
    written.append(plot_hist(vocab["df"], "Document frequency per term",
                             "df (documents containing the term)",
                             os.path.join(out_dir, "df_hist.png"), log=True))

    # 4) PageRank, only when exported
    pagerank_csv = os.path.join(base_dir, CSV_PAGERANK)
    if os.path.exists(pagerank_csv):
        pagerank = pd.read_csv(pagerank_csv)
        written.append(plot_hist(pagerank["pagerank"], "PageRank distribution", "pagerank",
                                 os.path.join(out_dir, "pagerank_hist.png")))

        top = pagerank.nlargest(20, "pagerank")
        print("\nTop 20 pages by PageRank:")
        print(top[["url", "in_links", "pagerank"]].to_string(index=False))
    else:
        print(f"{pagerank_csv} not found, skipping PageRank plot")

    print("\nAll plots written.")
    return written


if __name__ == "__main__":
    main(sys.argv[1] if len(sys.argv) > 1 else "stats")
