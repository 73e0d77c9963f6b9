import os

import pytest

pytest.importorskip("pandas")
pytest.importorskip("matplotlib")

from tools.plot_index_stats import main  # noqa: E402


def write(path, text):
    path.write_text(text, encoding="utf8")


def test_plots_written_for_exported_csvs(tmp_path):
    write(tmp_path / "index_document_stats.csv",
          "document_id,url,token_count,unique_terms,sparsity_percent\n"
          "1,http://s.test/a,10,8,40.000\n2,http://s.test/b,25,12,60.000\n")
    write(tmp_path / "vocab_stats.csv",
          "term_id,term,total_frequency,df,idf\n1,owl,3,2,0.17\n2,forest,5,3,0.0\n")

    written = main(str(tmp_path))

    assert [os.path.basename(p) for p in written] == [
        "token_count_hist.png", "sparsity_hist.png", "df_hist.png",
    ]
    assert all(os.path.exists(p) for p in written)


def test_pagerank_plot_when_exported(tmp_path):
    write(tmp_path / "index_document_stats.csv",
          "document_id,url,token_count,unique_terms,sparsity_percent\n1,http://s.test/a,10,8,40.0\n")
    write(tmp_path / "vocab_stats.csv", "term_id,term,total_frequency,df,idf\n1,owl,3,1,0.0\n")
    write(tmp_path / "pagerank.csv",
          "document_id,url,title,in_links,out_links,pagerank\n1,http://s.test/a,A,0,1,0.15\n")

    written = main(str(tmp_path))

    assert os.path.basename(written[-1]) == "pagerank_hist.png"
