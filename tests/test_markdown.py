from mdx_localize.content import extract_local_targets, extract_remote_urls
from mdx_localize.markdown import apply_downloads, revert

DOCUMENT = (
    "# Trip\n"
    "![Sunset over (the) bay](https://cdn.example.com/sunset.jpg) and "
    "![](https://cdn.example.com/map.png \"Route\")\n"
    "Again: ![Sunset again](https://cdn.example.com/sunset.jpg)\n"
    "Not downloaded: ![keep](https://other.example.com/keep.gif)\n"
)
DOWNLOADS = {
    "https://cdn.example.com/sunset.jpg": "attachments/1700000000_ab3f9.jpg",
    "https://cdn.example.com/map.png": "attachments/1700000000_zz9k2.png",
}


def test_apply_downloads_replaces_only_mapped_urls() -> None:
    updated = apply_downloads(DOCUMENT, DOWNLOADS)

    assert "https://cdn.example.com/sunset.jpg" not in updated
    assert "![Sunset over (the) bay](attachments/1700000000_ab3f9.jpg)" in updated
    assert "![Sunset again](attachments/1700000000_ab3f9.jpg)" in updated
    assert '![](attachments/1700000000_zz9k2.png "Route")' in updated
    assert extract_remote_urls(updated) == ["https://other.example.com/keep.gif"]
    assert extract_local_targets(updated) == list(DOWNLOADS.values())


def test_apply_downloads_with_empty_map_is_identity() -> None:
    assert apply_downloads(DOCUMENT, {}) == DOCUMENT


def test_revert_restores_original_text() -> None:
    local_text = apply_downloads(DOCUMENT, DOWNLOADS)
    reverted, count = revert(local_text, {local: url for url, local in DOWNLOADS.items()})

    assert reverted == DOCUMENT
    assert count == 2


def test_revert_treats_special_characters_literally() -> None:
    text = "![a](img/a+b(1).png) ![b](img/aXb(1).png)"
    reverted, count = revert(text, {"img/a+b(1).png": "https://x.example/a.png"})
    assert reverted == "![a](https://x.example/a.png) ![b](img/aXb(1).png)"
    assert count == 1


def test_revert_without_matches_reports_zero() -> None:
    reverted, count = revert(DOCUMENT, {"attachments/none.png": "https://x.example/none.png"})
    assert reverted == DOCUMENT
    assert count == 0


def test_revert_does_not_swallow_neighbouring_embeds() -> None:
    text = "![one](keep.png) ![two](local.png)"
    reverted, _ = revert(text, {"local.png": "https://x.example/two.png"})
    assert reverted == "![one](keep.png) ![two](https://x.example/two.png)"
