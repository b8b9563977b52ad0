from dailybrief.models import NewsItem


def assign_label(item: NewsItem, key_terms: list[str], fallback_label: str) -> str:
    """First key term (in list order) found in the item's title or description."""
    text = f"{item.title} {item.description}".lower()
    for term in key_terms:
        if term.lower() in text:
            return term
    return fallback_label


def label_clusters(
    items: list[NewsItem], key_terms: list[str], fallback_label: str,
) -> list[tuple[str, list[NewsItem]]]:
    """Group items by key term, largest bucket first.

    Buckets of equal size keep the order in which their label first appeared.
    """
    buckets: dict[str, list[NewsItem]] = {}
    for item in items:
        buckets.setdefault(assign_label(item, key_terms, fallback_label), []).append(item)
    return sorted(buckets.items(), key=lambda kv: len(kv[1]), reverse=True)


def cluster_news(items: list[NewsItem], key_terms: list[str], fallback_label: str) -> list[list[NewsItem]]:
    return [members for _, members in label_clusters(items, key_terms, fallback_label)]
