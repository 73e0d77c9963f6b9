from django.urls import path

from . import views

urlpatterns = [
    path("search", views.search_api, name="api-search"),
    path("process-query", views.process_query_api, name="api-process-query"),
    path("reindex", views.reindex_api, name="api-reindex"),
    path("metrics", views.metrics_api, name="api-metrics"),
    path("index-stats", views.index_stats_api, name="api-index-stats"),
]
