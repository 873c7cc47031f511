"""Serialization adapters for :class:`~dd_sketch.ddsketch.BaseDDSketch`.

Two encodings are provided, both built only from the sketch's public read
accessors:

``to_proto_dict`` / ``from_proto_dict``
    A plain ``dict`` shaped like the DDSketch protobuf message::

        {"mapping": {"gamma", "indexOffset", "interpolation"},
         "positiveValues": {"contiguousBinCounts", "contiguousBinIndexOffset"},
         "negativeValues": {...},
         "zeroCount": float}

    A protobuf serializer can fill its message from this dict field by field.
    The message carries no sum, min or max, so those are not restored.

``to_bytes`` / ``from_bytes``
    The versioned ``DDS1`` binary envelope. It keeps everything needed to
    rebuild the sketch exactly, summary statistics and store limits included.
"""
from __future__ import annotations

import struct
from typing import Any, Callable, Dict, List, Mapping, Tuple

from .ddsketch import BaseDDSketch
from .mapping import KeyMapping, mapping_class_for
from .store import CollapsingHighestDenseStore, CollapsingLowestDenseStore, DenseStore, Store

SERIAL_FORMAT_MAGIC = b"DDS1"
SERIAL_FORMAT_VERSION = 1

# Store kinds in the binary envelope.
_STORE_DENSE = 0
_STORE_COLLAPSING_LOWEST = 1
_STORE_COLLAPSING_HIGHEST = 2

_STORE_KINDS = {
    DenseStore: _STORE_DENSE,
    CollapsingLowestDenseStore: _STORE_COLLAPSING_LOWEST,
    CollapsingHighestDenseStore: _STORE_COLLAPSING_HIGHEST,
}


# ------------------------------ Wire-shaped dicts ------------------------------
def mapping_to_dict(mapping: KeyMapping) -> Dict[str, Any]:
    return {
        "gamma": mapping.gamma,
        "indexOffset": mapping.offset,
        "interpolation": mapping.interpolation.name,
    }


def store_to_dict(store: DenseStore) -> Dict[str, Any]:
    return {
        "contiguousBinCounts": list(store.bins),
        "contiguousBinIndexOffset": int(store.offset),
    }


def to_proto_dict(sketch: BaseDDSketch) -> Dict[str, Any]:
    """Return the wire message of ``sketch`` as a plain dict."""
    return {
        "mapping": mapping_to_dict(sketch.mapping),
        "positiveValues": store_to_dict(sketch.store),
        "negativeValues": store_to_dict(sketch.negative_store),
        "zeroCount": float(sketch.zero_count),
    }


def mapping_from_dict(message: Mapping[str, Any]) -> KeyMapping:
    mapping_cls = mapping_class_for(message.get("interpolation", "NONE"))
    return mapping_cls.from_gamma_offset(message["gamma"], message.get("indexOffset", 0.0))


def store_from_dict(message: Mapping[str, Any], store: Store) -> Store:
    """Add the bins of ``message`` into ``store`` and return it."""
    offset = int(message.get("contiguousBinIndexOffset", 0))
    for i, weight in enumerate(message.get("contiguousBinCounts", ())):
        if weight:
            store.add(offset + i, weight)
    return store


def from_proto_dict(
    message: Mapping[str, Any],
    store_factory: Callable[[], Store] = DenseStore,
) -> BaseDDSketch:
    """Rebuild a sketch from a wire message; missing stores come back empty."""
    mapping = mapping_from_dict(message["mapping"])
    store = store_from_dict(message.get("positiveValues") or {}, store_factory())
    negative_store = store_from_dict(message.get("negativeValues") or {}, store_factory())
    return BaseDDSketch(
        mapping=mapping,
        store=store,
        negative_store=negative_store,
        zero_count=float(message.get("zeroCount", 0.0)),
    )


# ------------------------------- Binary envelope -------------------------------
def _pack_store(out: bytearray, store: DenseStore) -> None:
    try:
        kind = _STORE_KINDS[type(store)]
    except KeyError:
        raise TypeError(f"cannot serialize store of type {type(store).__name__}") from None
    bin_limit = getattr(store, "bin_limit", 0)
    is_collapsed = getattr(store, "is_collapsed", False)
    has_range = store.length() > 0

    out += struct.pack(">B", kind)
    out += struct.pack(">I", store.chunk_size)
    out += struct.pack(">I", bin_limit)
    out += struct.pack(">B", 1 if is_collapsed else 0)
    out += struct.pack(">B", 1 if has_range else 0)
    out += struct.pack(">q", store.offset)
    out += struct.pack(">q", int(store.min_key) if has_range else 0)
    out += struct.pack(">q", int(store.max_key) if has_range else 0)
    out += struct.pack(">d", store.count)
    out += struct.pack(">I", len(store.bins))
    if store.bins:
        out += struct.pack(">" + "d" * len(store.bins), *store.bins)


def _unpack_store(mv: memoryview, off: int) -> Tuple[DenseStore, int]:
    kind = struct.unpack_from(">B", mv, off)[0]; off += 1
    chunk_size = struct.unpack_from(">I", mv, off)[0]; off += 4
    bin_limit = struct.unpack_from(">I", mv, off)[0]; off += 4
    is_collapsed = struct.unpack_from(">B", mv, off)[0]; off += 1
    has_range = struct.unpack_from(">B", mv, off)[0]; off += 1
    offset = struct.unpack_from(">q", mv, off)[0]; off += 8
    min_key = struct.unpack_from(">q", mv, off)[0]; off += 8
    max_key = struct.unpack_from(">q", mv, off)[0]; off += 8
    count = struct.unpack_from(">d", mv, off)[0]; off += 8
    nbins = struct.unpack_from(">I", mv, off)[0]; off += 4
    if nbins:
        bins: List[float] = list(struct.unpack_from(">" + "d" * nbins, mv, off))
        off += 8 * nbins
    else:
        bins = []

    store: DenseStore
    if kind == _STORE_DENSE:
        store = DenseStore(chunk_size=chunk_size)
    elif kind == _STORE_COLLAPSING_LOWEST:
        store = CollapsingLowestDenseStore(bin_limit, chunk_size=chunk_size)
        store.is_collapsed = bool(is_collapsed)
    elif kind == _STORE_COLLAPSING_HIGHEST:
        store = CollapsingHighestDenseStore(bin_limit, chunk_size=chunk_size)
        store.is_collapsed = bool(is_collapsed)
    else:
        raise ValueError(f"unknown store kind {kind} in payload")

    store.bins = bins
    store.offset = offset
    store.count = count
    if has_range:
        store.min_key = min_key
        store.max_key = max_key
    return store, off


def to_bytes(sketch: BaseDDSketch) -> bytes:
    """
    Serialize ``sketch`` into the versioned ``DDS1`` binary envelope.

    The layout is:
      magic 'DDS1' (4B), interpolation(uint8), relative_accuracy(double),
      offset(double), zero_count, count, sum, min, max (doubles), then the
      positive and the negative store, each as:
      kind(uint8), chunk_size(uint32), bin_limit(uint32), is_collapsed(uint8),
      has_range(uint8), offset, min_key, max_key (int64), count(double),
      len(uint32) followed by len doubles.
    """
    mapping = sketch.mapping
    out = bytearray()
    out += SERIAL_FORMAT_MAGIC
    out += struct.pack(">B", int(mapping.interpolation))
    out += struct.pack(">d", mapping.relative_accuracy)
    out += struct.pack(">d", mapping.offset)
    out += struct.pack(">d", sketch.zero_count)
    out += struct.pack(">d", sketch.count)
    out += struct.pack(">d", sketch.sum)
    out += struct.pack(">d", sketch.min)
    out += struct.pack(">d", sketch.max)
    _pack_store(out, sketch.store)
    _pack_store(out, sketch.negative_store)
    return bytes(out)


def from_bytes(payload: bytes) -> BaseDDSketch:
    """Rehydrate a sketch from :func:`to_bytes` output."""
    mv = memoryview(payload)
    if mv[:4].tobytes() != SERIAL_FORMAT_MAGIC:
        raise ValueError(
            "Unsupported serialization header. This reader only understands "
            f"{SERIAL_FORMAT_MAGIC!r}."
        )
    off = 4
    interpolation = struct.unpack_from(">B", mv, off)[0]; off += 1
    relative_accuracy = struct.unpack_from(">d", mv, off)[0]; off += 8
    offset = struct.unpack_from(">d", mv, off)[0]; off += 8
    zero_count, count, total, minimum, maximum = struct.unpack_from(">5d", mv, off); off += 40
    store, off = _unpack_store(mv, off)
    negative_store, off = _unpack_store(mv, off)

    mapping = mapping_class_for(interpolation)(relative_accuracy, offset=offset)
    sketch = BaseDDSketch(
        mapping=mapping,
        store=store,
        negative_store=negative_store,
        zero_count=zero_count,
    )
    sketch._restore_summary(count, total, minimum, maximum)
    return sketch


__all__ = [
    "SERIAL_FORMAT_MAGIC",
    "SERIAL_FORMAT_VERSION",
    "mapping_to_dict",
    "store_to_dict",
    "to_proto_dict",
    "mapping_from_dict",
    "store_from_dict",
    "from_proto_dict",
    "to_bytes",
    "from_bytes",
]
