# tests/test_files.py
import io

import pytest

from tracesdk.core.types import FileInfo
from tracesdk.crypto.cipher import SymmetricKey
from tracesdk.files.record import FileRecord
from tracesdk.files.substitution import (
    assign_objects,
    extract_file_records,
    extract_file_wrappers,
    format_path,
)
from tracesdk.files.wrapper import EncryptedBlobWrapper, FileWrapper


def make_record(digest="abc", **overrides):
    fields = dict(digest=digest, name="report.pdf", mimetype="application/pdf", size=12)
    fields.update(overrides)
    return FileRecord(**fields)


# ── wrappers ─────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_path_wrapper_info_and_encryption(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_bytes(b"hello trace")

    wrapper = FileWrapper.from_file_path(path)
    info = await wrapper.info()
    assert info.name == "notes.txt"
    assert info.size == 11
    assert info.mimetype == "text/plain"
    assert info.key is not None

    encrypted = await wrapper.encrypted_data()
    assert encrypted != b"hello trace"
    assert SymmetricKey.from_b64(info.key).decrypt(encrypted) == b"hello trace"
    assert await wrapper.decrypted_data() == b"hello trace"


@pytest.mark.asyncio
async def test_path_wrapper_missing_file(tmp_path):
    wrapper = FileWrapper.from_file_path(tmp_path / "missing.bin")
    with pytest.raises(FileNotFoundError):
        await wrapper.info()


@pytest.mark.asyncio
async def test_disabled_encryption_keeps_clear_bytes():
    info = FileInfo(mimetype="text/plain", size=5, name="a.txt")
    wrapper = FileWrapper.from_file_blob(b"clear", info, disable_encryption=True)
    assert (await wrapper.info()).key is None
    assert await wrapper.encrypted_data() == b"clear"


@pytest.mark.asyncio
async def test_blob_wrapper_reuses_key_from_info():
    key = SymmetricKey()
    info = FileInfo(mimetype="text/plain", size=5, name="a.txt", key=key.export())
    wrapper = FileWrapper.from_file_blob(b"hello", info)
    assert key.decrypt(await wrapper.encrypted_data()) == b"hello"


@pytest.mark.asyncio
async def test_file_object_wrapper():
    fileobj = io.BytesIO(b"%PDF-1.4 data")
    wrapper = FileWrapper.from_file_object(fileobj, name="scan.pdf")
    info = await wrapper.info()
    assert info.name == "scan.pdf"
    assert info.mimetype == "application/pdf"
    assert info.size == 13
    assert await wrapper.decrypted_data() == b"%PDF-1.4 data"


@pytest.mark.asyncio
async def test_encrypted_blob_wrapper_decrypts_lazily():
    key = SymmetricKey()
    blob = key.encrypt(b"stored")
    wrapper = EncryptedBlobWrapper(blob, make_record(key=key.export(), size=6))
    assert await wrapper.encrypted_data() == blob
    assert await wrapper.decrypted_data() == b"stored"
    assert (await wrapper.info()).name == "report.pdf"


def test_wrappers_get_unique_ids():
    info = FileInfo(mimetype="text/plain", size=1, name="a")
    a, b = FileWrapper.from_file_blob(b"a", info), FileWrapper.from_file_blob(b"a", info)
    assert a.id != b.id
    assert FileWrapper.is_file_wrapper(a)
    assert not FileWrapper.is_file_wrapper(info)


# ── records ──────────────────────────────────────────────────────────

def test_record_shape_detection():
    assert FileRecord.is_file_record(make_record())
    assert FileRecord.is_file_record({"digest": "d", "name": "n", "mimetype": "m", "size": 1})
    assert not FileRecord.is_file_record({"digest": "d", "name": "n", "mimetype": "m"})
    assert not FileRecord.is_file_record({"digest": "d", "name": "n", "mimetype": "m", "size": None})
    assert not FileRecord.is_file_record("digest")


def test_record_from_object_roundtrip():
    obj = {
        "digest": "d", "name": "n", "mimetype": "m", "size": 1,
        "key": "k", "createdAt": "2026-10-19T10:00:00+00:00",
    }
    record = FileRecord.from_object(obj)
    assert record.id == "d"
    assert record.created_at.year == 2026
    assert record.to_dict() == obj


# ── substitution ─────────────────────────────────────────────────────

def test_format_path():
    assert format_path(("a", "b", 2, "c")) == "a.b[2].c"
    assert format_path((0, 1)) == "[0][1]"
    assert format_path(()) == ""


def test_extract_wrappers_paths():
    info = FileInfo(mimetype="text/plain", size=1, name="a")
    w1, w2, w3 = (FileWrapper.from_file_blob(b"x", info) for _ in range(3))
    data = {"doc": w1, "nested": {"files": [w2, "text", w3]}, "n": 1}

    path_to_id, id_to_wrapper = extract_file_wrappers(data)
    assert path_to_id == {
        ("doc",): w1.id,
        ("nested", "files", 0): w2.id,
        ("nested", "files", 2): w3.id,
    }
    assert id_to_wrapper == {w1.id: w1, w2.id: w2, w3.id: w3}


def test_extract_from_root_list():
    info = FileInfo(mimetype="text/plain", size=1, name="a")
    w = FileWrapper.from_file_blob(b"x", info)
    path_to_id, _ = extract_file_wrappers(["x", w])
    assert path_to_id == {(1,): w.id}


def test_extract_records_revives_mappings():
    data = {"attachments": [{"digest": "d1", "name": "a", "mimetype": "m", "size": 1}]}
    path_to_id, id_to_record = extract_file_records(data)
    assert path_to_id == {("attachments", 0): "d1"}
    assert isinstance(id_to_record["d1"], FileRecord)


def test_assign_does_not_mutate_input():
    data = {"a": {"b": [1, 2, 3]}, "c": "keep"}
    out = assign_objects(data, {("a", "b", 1): "x"}, {"x": "replaced"})
    assert out == {"a": {"b": [1, "replaced", 3]}, "c": "keep"}
    assert data == {"a": {"b": [1, 2, 3]}, "c": "keep"}


def test_assign_empty_map_returns_data():
    data = {"a": 1}
    assert assign_objects(data, {}, {}) is data


def test_assign_root_path():
    assert assign_objects({"digest": "d"}, {(): "d"}, {"d": "wrapper"}) == "wrapper"


def test_keys_with_separators_and_int_keys_roundtrip():
    info = FileInfo(mimetype="application/pdf", size=1, name="report.pdf")
    w1, w2, w3, w4 = (FileWrapper.from_file_blob(b"x", info) for _ in range(4))
    data = {
        "report.pdf": w1,
        "a[0]": {"b.c": w2},
        1: w3,
        "list": [{2: w4}],
    }

    path_to_id, id_to_wrapper = extract_file_wrappers(data)
    assert path_to_id == {
        ("report.pdf",): w1.id,
        ("a[0]", "b.c"): w2.id,
        (1,): w3.id,
        ("list", 0, 2): w4.id,
    }

    id_to_record = {file_id: make_record(digest=f"d-{file_id}") for file_id in id_to_wrapper}
    out = assign_objects(data, path_to_id, id_to_record)
    assert set(out) == {"report.pdf", "a[0]", 1, "list"}
    assert out["report.pdf"] == id_to_record[w1.id]
    assert out["a[0]"] == {"b.c": id_to_record[w2.id]}
    assert out[1] == id_to_record[w3.id]
    assert out["list"] == [{2: id_to_record[w4.id]}]
    assert extract_file_wrappers(out) == ({}, {})

    paths, _ = extract_file_records(out)
    assert set(paths) == set(path_to_id)


@pytest.mark.asyncio
async def test_wrapper_record_wrapper_roundtrip():
    info = FileInfo(mimetype="text/plain", size=5, name="a.txt")
    w1 = FileWrapper.from_file_blob(b"hello", info)
    w2 = FileWrapper.from_file_blob(b"world", info)
    data = {"comment": "two files", "files": [w1, {"inner": w2}]}

    # wrappers -> records (what an upload does)
    path_to_id, id_to_wrapper = extract_file_wrappers(data)
    id_to_record = {}
    for file_id, wrapper in id_to_wrapper.items():
        file_info = await wrapper.info()
        id_to_record[file_id] = FileRecord(
            digest=f"digest-{file_id}", name=file_info.name, mimetype=file_info.mimetype,
            size=file_info.size, key=file_info.key,
        )
    with_records = assign_objects(data, path_to_id, id_to_record)
    assert with_records["comment"] == "two files"
    assert all(isinstance(r, FileRecord) for r in (with_records["files"][0], with_records["files"][1]["inner"]))

    # records -> wrappers (what a download does)
    paths, id_to_found = extract_file_records(with_records)
    assert set(paths) == {("files", 0), ("files", 1, "inner")}
    wrappers = {}
    for digest, record in id_to_found.items():
        original = id_to_wrapper[digest[len("digest-"):]]
        wrappers[digest] = EncryptedBlobWrapper(await original.encrypted_data(), record)
    restored = assign_objects(with_records, paths, wrappers)

    assert await restored["files"][0].decrypted_data() == b"hello"
    assert await restored["files"][1]["inner"].decrypted_data() == b"world"
    # the intermediate tree still holds records
    assert isinstance(with_records["files"][0], FileRecord)
