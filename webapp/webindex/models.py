from django.db import models


# 1) crawled page, written by the crawler / load_pages
class Document(models.Model):
    url = models.TextField(unique=True)
    title = models.TextField(blank=True, default="")
    content = models.TextField(blank=True, default="")
    status = models.CharField(max_length=32, blank=True, default="crawled")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    last_indexed = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "documents"

    def __str__(self):
        return self.url


# 2) term dictionary (stemmed words, unique)
class Term(models.Model):
    text = models.TextField(unique=True)
    total_frequency = models.BigIntegerField(default=0)

    class Meta:
        db_table = "terms"

    def __str__(self):
        return self.text


# 3) inverted index, whole-document counts
class Posting(models.Model):
    term = models.ForeignKey(Term, on_delete=models.CASCADE, related_name="postings")
    document = models.ForeignKey(Document, on_delete=models.CASCADE, related_name="postings")
    frequency = models.IntegerField(default=0)

    class Meta:
        db_table = "postings"
        constraints = [
            models.UniqueConstraint(fields=["term", "document"], name="uniq_posting_term_document"),
        ]
        indexes = [models.Index(fields=["document"])]


# 4) per-tag counts (p / h1 / h2 / h3)
class TagPosting(models.Model):
    TAGS = ("p", "h1", "h2", "h3")

    term = models.ForeignKey(Term, on_delete=models.CASCADE, related_name="tag_postings")
    document = models.ForeignKey(Document, on_delete=models.CASCADE, related_name="tag_postings")
    tag = models.CharField(max_length=8)
    frequency = models.IntegerField(default=0)

    class Meta:
        db_table = "tag_postings"
        constraints = [
            models.UniqueConstraint(
                fields=["term", "document", "tag"], name="uniq_tag_posting_term_document_tag"
            ),
        ]


# 5) token offsets for phrase / proximity checks
class TermPosition(models.Model):
    term = models.ForeignKey(Term, on_delete=models.CASCADE, related_name="positions")
    document = models.ForeignKey(Document, on_delete=models.CASCADE, related_name="term_positions")
    positions = models.JSONField(default=list)

    class Meta:
        db_table = "term_positions"
        constraints = [
            models.UniqueConstraint(fields=["term", "document"], name="uniq_position_term_document"),
        ]


# 6) per-term corpus statistics, rebuilt by index_compute_metrics
class TermStats(models.Model):
    term = models.OneToOneField(Term, on_delete=models.CASCADE, related_name="stats")
    document_frequency = models.IntegerField(default=0)
    idf = models.FloatField(default=0.0)
    total_documents = models.IntegerField(default=0)

    class Meta:
        db_table = "term_stats"


class PostingMetrics(models.Model):
    term = models.ForeignKey(Term, on_delete=models.CASCADE, related_name="posting_metrics")
    document = models.ForeignKey(Document, on_delete=models.CASCADE, related_name="posting_metrics")
    frequency = models.IntegerField(default=0)
    term_frequency = models.FloatField(default=0.0)
    tf_idf_score = models.FloatField(default=0.0)
    normalized_score = models.FloatField(default=0.0)

    class Meta:
        db_table = "posting_metrics"
        constraints = [
            models.UniqueConstraint(fields=["term", "document"], name="uniq_metrics_term_document"),
        ]


# 7) link graph (parent page links to child page)
class LinkEdge(models.Model):
    parent = models.ForeignKey(Document, on_delete=models.CASCADE, related_name="links_out")
    child = models.ForeignKey(Document, on_delete=models.CASCADE, related_name="links_in")

    class Meta:
        db_table = "link_edges"
        constraints = [
            models.UniqueConstraint(fields=["parent", "child"], name="uniq_link_parent_child"),
        ]


class PageRankScore(models.Model):
    document = models.OneToOneField(Document, on_delete=models.CASCADE, related_name="pagerank")
    pagerank = models.FloatField(default=0.0)

    class Meta:
        db_table = "pagerank_scores"


# 8) global statistics (N_docs, avg_doc_len, ...)
class IndexStat(models.Model):
    key = models.TextField(primary_key=True)
    value = models.TextField()

    class Meta:
        db_table = "index_stats"
