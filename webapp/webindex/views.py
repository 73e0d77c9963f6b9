import json

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from webindex.backend.index_service import get_index_service, get_search_service


def _json_body(request):
    if not request.body:
        return {}
    try:
        body = json.loads(request.body)
    except (TypeError, ValueError):
        return {}
    return body if isinstance(body, dict) else {}


@require_GET
def search_api(request):
    """
    GET /api/search?query=...&page=1&pageSize=10&order=blend|relevance
    """
    query = request.GET.get("query", request.GET.get("q", "")).strip()
    response = get_search_service().search(
        query,
        page=request.GET.get("page", 1),
        page_size=request.GET.get("pageSize", request.GET.get("size", 10)),
        order=request.GET.get("order"),
    )
    return JsonResponse(response.to_dict())


@require_GET
def process_query_api(request):
    """GET /api/process-query?query=... -> how the query is parsed."""
    query = request.GET.get("query", "").strip()
    return JsonResponse(get_search_service().describe_query(query))


@csrf_exempt
@require_POST
def reindex_api(request):
    """
    POST /api/reindex            all stored pages
    POST /api/reindex {"urls": [...]}
    Runs in a background thread; poll /api/index-stats for progress.
    """
    urls = _json_body(request).get("urls")
    if urls is not None and not isinstance(urls, list):
        return JsonResponse({"status": "error", "message": "urls must be a list"}, status=400)
    result = get_index_service().reindex(urls, background=True)
    return JsonResponse(result, status=202 if result["status"] == "started" else 409)


@csrf_exempt
@require_POST
def metrics_api(request):
    """POST /api/metrics -> recompute TF-IDF metrics in the background."""
    result = get_index_service().compute_metrics(background=True)
    return JsonResponse(result, status=202)


@require_GET
def index_stats_api(request):
    return JsonResponse(get_index_service().get_index_stats())
