from pathlib import Path

import pytest

from mdx_localize.vault import LocalVault, unique_name


def test_unique_name_appends_counter() -> None:
    taken = {"a.png", "a_1.png"}
    assert unique_name("b.png", taken.__contains__) == "b.png"
    assert unique_name("a.png", taken.__contains__) == "a_2.png"


def test_paths_outside_the_vault_are_rejected(vault: LocalVault) -> None:
    with pytest.raises(ValueError):
        vault.abspath("../outside.md")
    assert vault.exists("../outside.md") is False


def test_attachment_folder_relative_to_document(vault_root: Path) -> None:
    vault = LocalVault(vault_root, attachment_folder="./assets")
    path = vault.available_attachment_path("x.png", "notes/day.md")
    assert path == "notes/assets/x.png"
    assert (vault_root / "notes/assets").is_dir()


def test_available_attachment_path_skips_existing(vault: LocalVault, vault_root: Path) -> None:
    (vault_root / "attachments").mkdir()
    (vault_root / "attachments/x.png").write_bytes(b"old")
    assert vault.available_attachment_path("x.png", "a.md") == "attachments/x_1.png"


def test_write_binary_never_overwrites(vault: LocalVault, vault_root: Path) -> None:
    vault.write_binary("attachments/x.png", b"one")
    with pytest.raises(FileExistsError):
        vault.write_binary("attachments/x.png", b"two")
    assert (vault_root / "attachments/x.png").read_bytes() == b"one"


def test_write_text_replaces_content(vault: LocalVault) -> None:
    vault.write_text("notes/a.md", "first")
    vault.write_text("notes/a.md", "second\r\n")
    assert vault.read_text("notes/a.md") == "second\r\n"


def test_iter_documents_lists_markdown_only(vault: LocalVault, vault_root: Path) -> None:
    for name in ("b.md", "a/c.markdown", "a/img.png"):
        path = vault_root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("x", encoding="utf-8")
    assert list(vault.iter_documents()) == ["a/c.markdown", "b.md"]
