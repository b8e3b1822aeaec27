# tracesdk/files/substitution.py
"""
Find identifiable objects (file wrappers, file records) anywhere in a
value tree and swap them for other objects without mutating the tree.

A path is a tuple of tokens: mapping keys as they appear in the tree and
integer positions for lists. ``()`` is the root itself. Keys are kept
verbatim, so ``{"report.pdf": ...}`` and ``{1: ...}`` round-trip.
``format_path`` renders a path as ``a.b[2].c`` for display only.
"""

from typing import Any, Callable, Dict, Hashable, Mapping, Optional, Tuple, TypeVar

from tracesdk.files.record import FileRecord
from tracesdk.files.wrapper import FileWrapper

V = TypeVar("V")
Path = Tuple[Hashable, ...]
PathToId = Dict[Path, str]


def _extract_impl(
    data: Any,
    path: Path,
    path_to_id: PathToId,
    id_to_object: Dict[str, Any],
    predicate: Callable[[Any], bool],
    reviver: Optional[Callable[[Any], Any]],
) -> None:
    if predicate(data):
        obj = reviver(data) if reviver else data
        path_to_id[path] = obj.id
        id_to_object[obj.id] = obj
    elif isinstance(data, (list, tuple)):
        for idx, value in enumerate(data):
            _extract_impl(value, path + (idx,), path_to_id, id_to_object, predicate, reviver)
    elif isinstance(data, Mapping):
        for key, value in data.items():
            _extract_impl(value, path + (key,), path_to_id, id_to_object, predicate, reviver)


def extract_objects(
    data: Any,
    predicate: Callable[[Any], bool],
    reviver: Optional[Callable[[Any], V]] = None,
) -> Tuple[PathToId, Dict[str, V]]:
    """
    Depth-first search for objects satisfying ``predicate``. A match is not
    searched further. Returns (path -> id, id -> object).
    """
    path_to_id: PathToId = {}
    id_to_object: Dict[str, V] = {}
    _extract_impl(data, (), path_to_id, id_to_object, predicate, reviver)
    return path_to_id, id_to_object


def extract_file_wrappers(data: Any) -> Tuple[PathToId, Dict[str, FileWrapper]]:
    return extract_objects(data, FileWrapper.is_file_wrapper)


def extract_file_records(data: Any) -> Tuple[PathToId, Dict[str, FileRecord]]:
    return extract_objects(data, FileRecord.is_file_record, FileRecord.from_object)


def format_path(path: Path) -> str:
    out = ""
    for token in path:
        if isinstance(token, int) and not isinstance(token, bool):
            out += f"[{token}]"
        else:
            out += str(token) if out == "" else f".{token}"
    return out


class _Branch(dict):
    """Intermediate node of the sparse overlay (as opposed to a replacement value)."""


def _set_in_overlay(overlay: _Branch, path: Path, value: Any) -> None:
    node = overlay
    for token in path[:-1]:
        node = node.setdefault(token, _Branch())
    node[path[-1]] = value


def _clone(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _clone(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_clone(v) for v in value]
    return value


def _merge(value: Any, overlay: Any) -> Any:
    if not isinstance(overlay, _Branch):
        return overlay
    if isinstance(value, (list, tuple)):
        out = [_clone(v) for v in value]
        for idx, sub in overlay.items():
            while len(out) <= idx:
                out.append(None)
            out[idx] = _merge(out[idx], sub)
        return out
    if isinstance(value, Mapping):
        out = {k: _clone(v) for k, v in value.items()}
        for key, sub in overlay.items():
            out[key] = _merge(out.get(key), sub)
        return out
    # nothing to merge onto: materialize the overlay itself
    if overlay and all(isinstance(k, int) for k in overlay):
        return _merge([], overlay)
    return _merge({}, overlay)


def assign_objects(data: Any, path_to_id: PathToId, id_to_object: Mapping[str, Any]) -> Any:
    """
    Put ``id_to_object[path_to_id[path]]`` at every path of a copy of
    ``data``. The sparse overlay built from the paths is merged onto a
    clone, so the original data is left untouched.
    """
    if not path_to_id:
        return data
    if () in path_to_id:
        # the root itself was extracted
        return id_to_object.get(path_to_id[()])

    overlay = _Branch()
    for path, obj_id in path_to_id.items():
        _set_in_overlay(overlay, tuple(path), id_to_object.get(obj_id))

    return _merge(data, overlay)
