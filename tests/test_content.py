from mdx_localize.content import (
    extract_image_references,
    extract_local_targets,
    extract_remote_urls,
    iter_image_embeds,
    split_front_matter,
)
from mdx_localize.models import ImageKind


def test_remote_urls_in_encounter_order_without_duplicates() -> None:
    text = (
        "![a](https://cdn.example.com/1.png) ![b](http://img.example.com/2.jpg)\n"
        "text ![](https://cdn.example.com/1.png)\n"
        "![c](images/local.png)\n"
        "![d](https://cdn.example.com/3.gif)"
    )
    assert extract_remote_urls(text) == [
        "https://cdn.example.com/1.png",
        "http://img.example.com/2.jpg",
        "https://cdn.example.com/3.gif",
    ]


def test_local_targets_are_never_reported_as_remote() -> None:
    text = "![x](/attachments/a.png) ![y](img/b.png) ![z](data:image/png;base64,AAAA)"
    assert extract_remote_urls(text) == []
    assert extract_local_targets(text) == ["/attachments/a.png", "img/b.png"]


def test_malformed_embeds_are_ignored() -> None:
    text = "![broken](https://a.example/x.png\n![also broken]https://b.example/y.png [z](https://c.example/z.png)"
    assert extract_remote_urls(text) == []


def test_empty_text_yields_nothing() -> None:
    assert extract_remote_urls("") == []
    assert extract_image_references("no images here") == []


def test_title_and_brackets_are_split_from_target() -> None:
    text = '![chart](https://x.example/c.png "Quarterly") ![logo](<assets/my logo.png>)'
    embeds = list(iter_image_embeds(text))
    assert [embed.target for embed in embeds] == ["https://x.example/c.png", "assets/my logo.png"]
    assert embeds[0].title == ' "Quarterly"'
    assert embeds[1].bracketed is True


def test_parentheses_inside_url_are_kept() -> None:
    text = "![w](https://upload.example.org/File_(1).png) tail)"
    assert extract_remote_urls(text) == ["https://upload.example.org/File_(1).png"]


def test_references_carry_kind_and_alt() -> None:
    refs = extract_image_references("![one](https://a.example/1.png) ![two](b.png)")
    assert [(ref.kind, ref.alt) for ref in refs] == [(ImageKind.REMOTE, "one"), (ImageKind.LOCAL, "two")]


def test_split_front_matter_returns_mapping_and_body() -> None:
    text = "---\ntitle: Note\nsource: https://blog.example.com/post\n---\nBody here\n"
    metadata, body = split_front_matter(text)
    assert metadata == {"title": "Note", "source": "https://blog.example.com/post"}
    assert body == "Body here\n"


def test_split_front_matter_ignores_malformed_block() -> None:
    text = "---\ntitle: [unclosed\n---\nBody"
    metadata, body = split_front_matter(text)
    assert metadata == {}
    assert body == text


def test_split_front_matter_without_block() -> None:
    metadata, body = split_front_matter("# Heading\n---\n")
    assert metadata == {}
    assert body == "# Heading\n---\n"
