"""Pick the analysis lens(es) an issue should be written through."""


def match_frameworks(title: str, description: str, frameworks: list[dict], limit: int = 2) -> list[dict]:
    """Rank frameworks by how many of their triggers appear in the text.

    Falls back to the first configured framework when nothing matches.
    """
    text = f"{title} {description}".lower()
    scored = []
    for fw in frameworks:
        hits = sum(1 for trigger in fw.get("triggers", []) if trigger.lower() in text)
        if hits:
            scored.append((hits, fw))

    if not scored:
        return frameworks[:1]

    # sorted() is stable, so config order breaks ties
    scored = sorted(scored, key=lambda pair: pair[0], reverse=True)
    return [fw for _, fw in scored[:limit]]


def framework_names(frameworks: list[dict]) -> str:
    return ", ".join(fw["name"] for fw in frameworks)
