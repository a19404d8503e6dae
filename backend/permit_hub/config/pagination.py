DEFAULT_LIMIT = 50
MAX_LIMIT = 200

def normalize_pagination(limit_raw, offset_raw):
    try:
        limit = int(limit_raw) if limit_raw is not None else DEFAULT_LIMIT
        offset = int(offset_raw) if offset_raw is not None else 0
    except ValueError:
        raise ValueError('limit/offset must be int')
    limit = max(1, min(limit, MAX_LIMIT))
    offset = max(0, offset)
    return limit, offset


def normalize_page(page_raw, size_raw):
    """Translate 1-based page/size paging into (limit, offset)."""
    try:
        page = int(page_raw) if page_raw is not None else 1
        size = int(size_raw) if size_raw is not None else DEFAULT_LIMIT
    except ValueError:
        raise ValueError('page/size must be int')
    page = max(1, page)
    limit, _ = normalize_pagination(size, 0)
    return limit, (page - 1) * limit
