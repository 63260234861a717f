import pytest

from circulerp.services.storage import InvalidFilename, LocalStorage, is_safe_filename


@pytest.mark.parametrize(
    "name",
    ["1700000000000-abcdef.pdf", "order-1.png", "INV_2024.pdf", "a.b-c_d"],
)
def test_safe_names(name):
    assert is_safe_filename(name)


@pytest.mark.parametrize(
    "name",
    ["", "..", "../../etc/passwd", "a/b.pdf", "a..pdf", "name with space.pdf", "x\\y.pdf", "é.pdf"],
)
def test_unsafe_names(name):
    assert not is_safe_filename(name)


def test_save_resolve_delete(tmp_path):
    store = LocalStorage(str(tmp_path))
    name = store.save("payments", b"%PDF", ".PDF")

    assert name.endswith(".pdf")
    path = store.resolve("payments", name)
    assert path == tmp_path / "payments" / name
    assert path.read_bytes() == b"%PDF"

    store.delete("payments", name)
    assert not path.exists()
    # deleting twice or deleting nothing is harmless
    store.delete("payments", name)
    store.delete("payments", None)


def test_random_names_differ(tmp_path):
    store = LocalStorage(str(tmp_path))
    assert store.save("orders", b"1", ".png") != store.save("orders", b"2", ".png")


def test_unknown_folder_rejected(tmp_path):
    with pytest.raises(InvalidFilename):
        LocalStorage(str(tmp_path)).save("secrets", b"x", ".pdf")


def test_resolve_rejects_traversal(tmp_path):
    with pytest.raises(InvalidFilename):
        LocalStorage(str(tmp_path)).resolve("invoices", "../config.json")
