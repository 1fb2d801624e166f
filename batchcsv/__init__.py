"""
batchcsv: typed records and generic rows to/from delimited text, in batches (stdlib-only).

Contract (v0):
- The first line is the header; it is split on the configured delimiter and
  nothing else (no quoting, no escaping, no embedded delimiters or newlines).
- Typed records are dataclasses or plain classes with annotations and a
  zero-argument constructor. A plain class without annotations uses its
  public class attributes, typed by their defaults. A field's column is its
  own name, or the name given by a ColumnMapping:
    @dataclass
    class User:
        user_name: str = column("Name", default="")
        age: Annotated[int, ColumnMapping("Age")] = 0
- Reading: data lines are read in batches of `batch_size`; each batch is
  filled completely, then emitted in input order.
    typed mode   -> field looked up by column name in the header; a column
                    absent from the header, or a cell absent from a short
                    line, leaves the field at its default.
    generic mode -> dict zipping header names to cells; "" -> None.
  Extra cells beyond the header are ignored.
- Coercion errors: log_errors=False abandons the rest of that record (the
  partial record is still yielded); log_errors=True logs and raises
  ConversionError, ending the read.
- Writing: header from the first non-None record (typed) or the first
  row's keys (generic). An empty typed input still writes one empty
  header line; an empty generic input writes nothing.
  None -> "", bool -> true/false, datetime -> isoformat(), float -> repr(f).
- Async: same algorithm over async line sources/sinks. A `cancel` event is
  checked between batches only: cancellation granularity = one batch.
- initial_capacity is validated and accepted for compatibility only; list
  results grow on their own and never read it.

API:
- CsvParser(config) -> engine owning the header cache
    iter_records / read_records / aiter_records / aread_records (+ _from_string, _from_file)
    iter_rows / read_rows / aiter_rows / aread_rows (+ _from_string, _from_file)
    write_records / write_rows / awrite_records / awrite_rows (+ _to_string, _to_file)
    resolve_header(record_type), clear_caches()
- reader(f, record_type, ...) / DictReader(f, ...) -> batched iterators
- writerecords(f, records, ...) / writerows(f, rows, ...)

Python: 3.10+
"""

from __future__ import annotations

import asyncio
import dataclasses
import inspect
import io
import itertools
import logging
import types
import typing
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Union,
)

__version__ = "0.1.0"

logger = logging.getLogger(__name__)

Row = Dict[str, Optional[str]]

_MISSING = object()
_NONE_TYPE = type(None)
_COLUMN_METADATA_KEY = "batchcsv.column"


# ----------------------------
# Exceptions
# ----------------------------

class EmptyColumnMappingError(ValueError):
    """Raised when a column mapping is declared with an empty name."""


class ConversionError(ValueError):
    """Raised when a cell cannot be coerced to its field's declared type."""

    def __init__(
        self,
        *,
        value: str,
        target: str,
        reason: str,
        row: Optional[int] = None,
        col: Optional[int] = None,
        column: Optional[str] = None,
        field: Optional[str] = None,
    ) -> None:
        msg = (
            "ConversionError(" +
            f"row={row}, col={col}, column={column!r}, field={field!r}, "
            f"value={value!r}, target={target}): {reason}"
        )
        super().__init__(msg)
        self.row = row          # 1-based line number (header line is 1)
        self.col = col          # 0-based header index
        self.column = column    # resolved column name
        self.field = field      # attribute name on the record
        self.value = value      # raw cell text
        self.target = target    # declared type, as text
        self.reason = reason


# ----------------------------
# Configuration
# ----------------------------

@dataclass(frozen=True)
class CsvConfig:
    delimiter: str = ","
    include_header: bool = True
    lower_case_headers: bool = False
    batch_size: int = 1000
    # pre-sizing hint for whole-collection reads; list results ignore it
    initial_capacity: int = 0
    log_errors: bool = False
    line_terminator: str = "\n"
    # bool parsing (case-insensitive)
    bool_true: Tuple[str, ...] = ("true", "t", "yes", "y", "1")
    bool_false: Tuple[str, ...] = ("false", "f", "no", "n", "0")
    datetime_parser: Callable[[str], datetime] = staticmethod(datetime.fromisoformat)
    datetime_formatter: Callable[[datetime], str] = staticmethod(lambda dt: dt.isoformat())

    def __post_init__(self) -> None:
        if not self.delimiter:
            raise ValueError("delimiter must be a non-empty string")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size!r}")
        if self.initial_capacity < 0:
            raise ValueError(f"initial_capacity must be >= 0, got {self.initial_capacity!r}")

    def replace(self, **changes: Any) -> "CsvConfig":
        return dataclasses.replace(self, **changes)


DEFAULT = CsvConfig()
DEFAULT_CONFIG = DEFAULT


# ----------------------------
# Column mapping
# ----------------------------

@dataclass(frozen=True)
class ColumnMapping:
    """Explicit column name for a field, overriding the field's own name."""

    name: str
    lower_name: str = field(init=False)

    def __post_init__(self) -> None:
        if not isinstance(self.name, str):
            raise TypeError(f"Column name must be a string, got {type(self.name).__name__}")
        if self.name == "":
            raise EmptyColumnMappingError("Column name cannot be empty")
        object.__setattr__(self, "lower_name", self.name.lower())


def column(name: str, **kwargs: Any) -> Any:
    """dataclasses.field(...) carrying a ColumnMapping for `name`."""
    mapping = ColumnMapping(name)
    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata[_COLUMN_METADATA_KEY] = mapping
    return field(metadata=metadata, **kwargs)


# ----------------------------
# Record introspection
# ----------------------------

@dataclass(frozen=True)
class FieldDescriptor:
    name: str                        # attribute name
    target: Any                      # declared type (Any when undeclared)
    mapping: Optional[ColumnMapping] = None

    def column_name(self, lower: bool = False) -> str:
        if self.mapping is not None:
            return self.mapping.lower_name if lower else self.mapping.name
        return self.name.lower() if lower else self.name

    def get(self, obj: Any) -> Any:
        return getattr(obj, self.name)

    def set(self, obj: Any, value: Any) -> None:
        setattr(obj, self.name, value)


def _split_annotated(hint: Any) -> Tuple[Any, Optional[ColumnMapping]]:
    if typing.get_origin(hint) is typing.Annotated:
        base, *extras = typing.get_args(hint)
        for extra in extras:
            if isinstance(extra, ColumnMapping):
                return base, extra
        return base, None

    # Optional[Annotated[X, ColumnMapping(...)]] keeps the union, drops the Annotated
    members = _union_members(hint)
    if members is not None:
        mapping: Optional[ColumnMapping] = None
        bases = []
        for member in members:
            base, found = _split_annotated(member)
            bases.append(base)
            if mapping is None:
                mapping = found
        if mapping is not None:
            return Union[tuple(bases)], mapping
    return hint, None


def _class_attributes(record_type: type) -> List[Tuple[str, Any]]:
    """Public, non-callable class attributes in definition order (bases first)."""
    out: Dict[str, Any] = {}
    for klass in reversed(record_type.__mro__):
        if klass is object:
            continue
        for name, value in vars(klass).items():
            if name.startswith("_") or callable(value):
                continue
            if isinstance(value, (classmethod, staticmethod)) or inspect.isdatadescriptor(value):
                continue
            out[name] = value
    return list(out.items())


def describe_record(record_type: type) -> Tuple[FieldDescriptor, ...]:
    """
    Ordered fields of a record type: dataclass fields in declaration order,
    otherwise class annotations in declaration order (ClassVar excluded).
    A plain class with no annotations falls back to its public class
    attributes, typed by their default values.
    """
    hints = typing.get_type_hints(record_type, include_extras=True)

    if dataclasses.is_dataclass(record_type):
        out: List[FieldDescriptor] = []
        for f in dataclasses.fields(record_type):
            target, mapping = _split_annotated(hints.get(f.name, f.type))
            declared = f.metadata.get(_COLUMN_METADATA_KEY)
            out.append(FieldDescriptor(f.name, target, declared if declared is not None else mapping))
        return tuple(out)

    out = []
    for name, hint in hints.items():
        if typing.get_origin(hint) is typing.ClassVar or hint is typing.ClassVar:
            continue
        target, mapping = _split_annotated(hint)
        out.append(FieldDescriptor(name, target, mapping))

    if not hints:
        for name, value in _class_attributes(record_type):
            out.append(FieldDescriptor(name, Any if value is None else type(value)))
    return tuple(out)


def describe_instance(obj: Any) -> Tuple[FieldDescriptor, ...]:
    """Fields of a structurally anonymous value (namedtuple, SimpleNamespace, plain object)."""
    if isinstance(obj, tuple) and hasattr(obj, "_fields"):
        names: Sequence[str] = obj._fields
    elif hasattr(obj, "__dict__"):
        names = [n for n in vars(obj) if not n.startswith("_")]
    else:
        return ()
    return tuple(FieldDescriptor(n, type(getattr(obj, n))) for n in names)


# ----------------------------
# Field coercion
# ----------------------------

def _type_label(target: Any) -> str:
    return getattr(target, "__name__", None) or repr(target)


def _parse_bool(raw: str, config: CsvConfig) -> bool:
    s = raw.strip().lower()
    if s in config.bool_true:
        return True
    if s in config.bool_false:
        return False
    raise ValueError(f"Invalid bool literal: {raw!r}")


def _union_members(target: Any) -> Optional[Tuple[Any, ...]]:
    origin = typing.get_origin(target)
    if origin is Union or origin is types.UnionType:
        return typing.get_args(target)
    return None


def _convert(raw: str, target: Any, config: CsvConfig) -> Any:
    if target is str or target is Any:
        return raw
    if target is bool:
        return _parse_bool(raw, config)
    if target is datetime:
        return config.datetime_parser(raw)
    if target is date or target is time:
        return target.fromisoformat(raw)
    if isinstance(target, type) and issubclass(target, Enum):
        if raw in target.__members__:
            return target[raw]
        return target(raw)
    if callable(target):
        return target(raw)
    raise TypeError(f"Unsupported field type: {target!r}")


def coerce(
    raw: str,
    target: Any,
    config: CsvConfig = DEFAULT,
    *,
    row: Optional[int] = None,
    col: Optional[int] = None,
    column: Optional[str] = None,
    field: Optional[str] = None,
) -> Any:
    """
    Convert one raw cell to `target`. Optional[X] / X | None maps "" to None;
    other unions try their members in order. Raises ConversionError.
    """
    members = _union_members(target)
    if members is not None:
        if raw == "" and _NONE_TYPE in members:
            return None
        candidates = [m for m in members if m is not _NONE_TYPE]
    else:
        candidates = [target]

    reason = f"no candidate type for {_type_label(target)}"
    for candidate in candidates:
        try:
            return _convert(raw, candidate, config)
        except (ValueError, TypeError, KeyError, ArithmeticError) as e:
            reason = f"Parse failed for type {_type_label(candidate)!r}: {e}"

    raise ConversionError(
        value=raw, target=_type_label(target), reason=reason,
        row=row, col=col, column=column, field=field,
    )


def stringify(value: Any, config: CsvConfig = DEFAULT) -> str:
    """Canonical cell text for a value; None -> ""."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, datetime):
        return config.datetime_formatter(value)
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.name
    return str(value)


# ----------------------------
# Header resolution / cache
# ----------------------------

@dataclass(frozen=True)
class ResolvedHeader:
    fields: Tuple[FieldDescriptor, ...]
    columns: Tuple[str, ...]


EMPTY_HEADER = ResolvedHeader(fields=(), columns=())


class HeaderCache:
    """
    Record type -> ResolvedHeader. Entries are immutable and recomputation is
    deterministic, so a race between two first uses only overwrites equal values.
    """

    def __init__(self) -> None:
        self._entries: Dict[type, ResolvedHeader] = {}

    def get(self, record_type: type) -> Optional[ResolvedHeader]:
        return self._entries.get(record_type)

    def put(self, record_type: type, entry: ResolvedHeader) -> ResolvedHeader:
        return self._entries.setdefault(record_type, entry)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, record_type: object) -> bool:
        return record_type in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def _header_for(fields: Sequence[FieldDescriptor], config: CsvConfig) -> ResolvedHeader:
    return ResolvedHeader(
        fields=tuple(fields),
        columns=tuple(fd.column_name(config.lower_case_headers) for fd in fields),
    )


# ----------------------------
# Line handling
# ----------------------------

def _strip_terminator(line: str) -> str:
    if line.endswith("\n"):
        line = line[:-1]
    if line.endswith("\r"):
        line = line[:-1]
    return line


def _split_header(line: Optional[str], delimiter: str) -> List[str]:
    if line is None:
        return []
    return _strip_terminator(line).split(delimiter)


class _RecordBuilder:
    """Builds one typed record per data line against a fixed header."""

    def __init__(
        self,
        record_type: type,
        resolved: ResolvedHeader,
        header: Sequence[str],
        config: CsvConfig,
    ) -> None:
        self._record_type = record_type
        self._config = config
        # (field, column, index in header or -1), first occurrence wins
        self._plan = [
            (fd, name, header.index(name) if name in header else -1)
            for fd, name in zip(resolved.fields, resolved.columns)
        ]

    def __call__(self, cells: Sequence[str], row: int) -> Any:
        record = self._record_type()
        for fd, name, idx in self._plan:
            if idx < 0 or idx >= len(cells):
                continue
            try:
                value = coerce(cells[idx], fd.target, self._config, row=row, col=idx, column=name, field=fd.name)
            except ConversionError as e:
                if self._config.log_errors:
                    logger.error("%s", e)
                    raise
                logger.debug("Row %d: skipping remaining fields after %r: %s", row, fd.name, e.reason)
                break
            fd.set(record, value)
        return record


class _RowBuilder:
    """Builds one generic row per data line; "" and missing cells become None."""

    def __init__(self, header: Sequence[str]) -> None:
        self._header = list(header)

    def __call__(self, cells: Sequence[str], row: int) -> Row:
        out: Row = {}
        for j, name in enumerate(self._header):
            raw = cells[j] if j < len(cells) else ""
            out[name] = raw if raw != "" else None
        return out


def _is_cancelled(cancel: Any) -> bool:
    return cancel is not None and cancel.is_set()


# ----------------------------
# Readers
# ----------------------------

class _BatchedReader:
    """Reads the header on construction, then yields data lines in batches."""

    def __init__(self, f: Iterable[str], config: CsvConfig) -> None:
        self._lines = iter(f)
        self._config = config
        self.header = _split_header(next(self._lines, None), config.delimiter)
        self._build = self._make_builder(self.header)
        self._row_index = 1
        self._iter: Optional[Iterator[Any]] = None

    def _make_builder(self, header: Sequence[str]) -> Callable[[Sequence[str], int], Any]:
        raise NotImplementedError

    def __iter__(self) -> "_BatchedReader":
        return self

    def __next__(self) -> Any:
        if self._iter is None:
            self._iter = self._iter_batches()
        return next(self._iter)

    def _iter_batches(self) -> Iterator[Any]:
        batch_size = self._config.batch_size
        delimiter = self._config.delimiter
        batch: List[Any] = []
        while True:
            exhausted = False
            for _ in range(batch_size):
                line = next(self._lines, None)
                if line is None:
                    exhausted = True
                    break
                self._row_index += 1
                cells = _strip_terminator(line).split(delimiter)
                batch.append(self._build(cells, self._row_index))
            logger.debug("Emitting batch of %d (through row %d)", len(batch), self._row_index)
            yield from batch
            batch.clear()
            if exhausted:
                return


class RecordReader(_BatchedReader):
    """Batched iterator of typed records; the header is consumed on construction."""

    def __init__(self, f: Iterable[str], record_type: type, parser: "CsvParser") -> None:
        self.record_type = record_type
        self.resolved = parser.resolve_header(record_type)
        super().__init__(f, parser.config)

    def _make_builder(self, header: Sequence[str]) -> _RecordBuilder:
        return _RecordBuilder(self.record_type, self.resolved, header, self._config)


class RowReader(_BatchedReader):
    """Batched iterator of generic rows (dict: header name -> str | None)."""

    def __init__(self, f: Iterable[str], parser: "CsvParser") -> None:
        super().__init__(f, parser.config)
        self.fieldnames = self.header

    def _make_builder(self, header: Sequence[str]) -> _RowBuilder:
        return _RowBuilder(header)


async def _aiter_lines(source: Any) -> AsyncIterator[str]:
    if hasattr(source, "__aiter__"):
        async for line in source:
            yield line
    else:
        for line in source:
            yield line


async def _aiter_file_lines(f: Any) -> AsyncIterator[str]:
    while True:
        line = await asyncio.to_thread(f.readline)
        if not line:
            return
        yield line


class _AsyncBatchedReader:
    """
    Async counterpart of _BatchedReader. The header is read on the first
    __anext__; `cancel` (anything with is_set()) is checked between batches.
    """

    def __init__(self, f: Any, config: CsvConfig, cancel: Any = None) -> None:
        self._source = f
        self._config = config
        self._cancel = cancel
        self.header: Optional[List[str]] = None
        self._row_index = 1
        self._iter: Optional[AsyncIterator[Any]] = None

    def _make_builder(self, header: Sequence[str]) -> Callable[[Sequence[str], int], Any]:
        raise NotImplementedError

    def __aiter__(self) -> "_AsyncBatchedReader":
        return self

    async def __anext__(self) -> Any:
        if self._iter is None:
            self._iter = self._iter_batches()
        return await self._iter.__anext__()

    async def aclose(self) -> None:
        if self._iter is not None:
            await self._iter.aclose()

    async def _iter_batches(self) -> AsyncIterator[Any]:
        lines = _aiter_lines(self._source)
        batch_size = self._config.batch_size
        delimiter = self._config.delimiter

        self.header = _split_header(await anext(lines, None), delimiter)
        build = self._make_builder(self.header)

        batch: List[Any] = []
        while not _is_cancelled(self._cancel):
            exhausted = False
            for _ in range(batch_size):
                line = await anext(lines, None)
                if line is None:
                    exhausted = True
                    break
                self._row_index += 1
                cells = _strip_terminator(line).split(delimiter)
                batch.append(build(cells, self._row_index))
            logger.debug("Emitting batch of %d (through row %d)", len(batch), self._row_index)
            for item in batch:
                yield item
            batch.clear()
            if exhausted:
                return
        logger.debug("Read cancelled after row %d", self._row_index)


class AsyncRecordReader(_AsyncBatchedReader):
    def __init__(self, f: Any, record_type: type, parser: "CsvParser", cancel: Any = None) -> None:
        super().__init__(f, parser.config, cancel)
        self.record_type = record_type
        self.resolved = parser.resolve_header(record_type)

    def _make_builder(self, header: Sequence[str]) -> _RecordBuilder:
        return _RecordBuilder(self.record_type, self.resolved, header, self._config)


class AsyncRowReader(_AsyncBatchedReader):
    @property
    def fieldnames(self) -> Optional[List[str]]:
        """Header names; None until the first row has been requested."""
        return self.header

    def _make_builder(self, header: Sequence[str]) -> _RowBuilder:
        return _RowBuilder(header)


# ----------------------------
# Writers
# ----------------------------

async def _awrite(sink: Any, chunk: str) -> None:
    result = sink.write(chunk)
    if inspect.isawaitable(result):
        await result


class _ThreadedSink:
    """Runs a blocking text sink's write() on a worker thread."""

    def __init__(self, f: Any) -> None:
        self._f = f

    async def write(self, chunk: str) -> None:
        await asyncio.to_thread(self._f.write, chunk)


# ----------------------------
# Parser (engine instance: config + header cache)
# ----------------------------

class CsvParser:
    """
    Reads and writes delimited text with one configuration. The header cache
    lives as long as the instance; call clear_caches() when record shapes change.
    """

    def __init__(
        self,
        config: CsvConfig = DEFAULT,
        *,
        describe: Callable[[type], Sequence[FieldDescriptor]] = describe_record,
    ) -> None:
        self.config = config
        self._describe = describe
        self._cache = HeaderCache()

    @classmethod
    def from_config(cls, **options: Any) -> "CsvParser":
        return cls(CsvConfig(**options))

    # -- header resolution --

    def resolve_header(self, record_type: type) -> ResolvedHeader:
        entry = self._cache.get(record_type)
        if entry is None:
            entry = self._cache.put(record_type, _header_for(self._describe(record_type), self.config))
            logger.debug("Resolved header for %s: %s", _type_label(record_type), list(entry.columns))
        return entry

    def clear_caches(self) -> None:
        logger.debug("Clearing %d cached header(s)", len(self._cache))
        self._cache.clear()

    def _resolve_instance(self, obj: Any) -> ResolvedHeader:
        resolved = self.resolve_header(type(obj))
        if resolved.fields:
            return resolved
        return _header_for(describe_instance(obj), self.config)

    # -- typed reads --

    def iter_records(self, f: Iterable[str], record_type: type) -> RecordReader:
        return RecordReader(f, record_type, self)

    def read_records(self, f: Iterable[str], record_type: type) -> List[Any]:
        return list(self.iter_records(f, record_type))

    def read_records_from_string(self, text: str, record_type: type) -> List[Any]:
        return self.read_records(io.StringIO(text), record_type)

    def read_records_from_file(self, path: Any, record_type: type, *, encoding: str = "utf-8") -> List[Any]:
        with open(path, "r", encoding=encoding, newline="") as f:
            return self.read_records(f, record_type)

    def aiter_records(self, f: Any, record_type: type, *, cancel: Any = None) -> AsyncRecordReader:
        return AsyncRecordReader(f, record_type, self, cancel)

    async def aread_records(self, f: Any, record_type: type, *, cancel: Any = None) -> List[Any]:
        return [r async for r in self.aiter_records(f, record_type, cancel=cancel)]

    async def aread_records_from_string(self, text: str, record_type: type, *, cancel: Any = None) -> List[Any]:
        return await self.aread_records(io.StringIO(text), record_type, cancel=cancel)

    async def aread_records_from_file(
        self, path: Any, record_type: type, *, encoding: str = "utf-8", cancel: Any = None
    ) -> List[Any]:
        with open(path, "r", encoding=encoding, newline="") as f:
            return await self.aread_records(_aiter_file_lines(f), record_type, cancel=cancel)

    # -- generic reads --

    def iter_rows(self, f: Iterable[str]) -> RowReader:
        return RowReader(f, self)

    def read_rows(self, f: Iterable[str]) -> List[Row]:
        return list(self.iter_rows(f))

    def read_rows_from_string(self, text: str) -> List[Row]:
        return self.read_rows(io.StringIO(text))

    def read_rows_from_file(self, path: Any, *, encoding: str = "utf-8") -> List[Row]:
        with open(path, "r", encoding=encoding, newline="") as f:
            return self.read_rows(f)

    def aiter_rows(self, f: Any, *, cancel: Any = None) -> AsyncRowReader:
        return AsyncRowReader(f, self.config, cancel)

    async def aread_rows(self, f: Any, *, cancel: Any = None) -> List[Row]:
        return [r async for r in self.aiter_rows(f, cancel=cancel)]

    async def aread_rows_from_string(self, text: str, *, cancel: Any = None) -> List[Row]:
        return await self.aread_rows(io.StringIO(text), cancel=cancel)

    async def aread_rows_from_file(self, path: Any, *, encoding: str = "utf-8", cancel: Any = None) -> List[Row]:
        with open(path, "r", encoding=encoding, newline="") as f:
            return await self.aread_rows(_aiter_file_lines(f), cancel=cancel)

    # -- formatting (shared by sync and async writes) --

    def _record_lines(self, records: Iterable[Any]) -> Iterator[str]:
        cfg = self.config
        it = iter(records)
        # header comes from the first non-None record
        leading: List[Any] = []
        first = next(it, _MISSING)
        while first is None:
            leading.append(first)
            first = next(it, _MISSING)
        if first is _MISSING:
            resolved = EMPTY_HEADER
            it = iter(leading)
        else:
            resolved = self._resolve_instance(first)
            it = itertools.chain(leading, [first], it)

        if cfg.include_header:
            yield cfg.delimiter.join(resolved.columns) + cfg.line_terminator
        for record in it:
            if record is None:
                yield cfg.line_terminator
                continue
            yield cfg.delimiter.join(stringify(fd.get(record), cfg) for fd in resolved.fields) + cfg.line_terminator

    def _row_lines(self, rows: Iterable[Mapping[str, Any]]) -> Iterator[str]:
        cfg = self.config
        it = iter(rows)
        first = next(it, _MISSING)
        if first is _MISSING:
            return
        if cfg.include_header:
            yield cfg.delimiter.join(first.keys()) + cfg.line_terminator
        for row in itertools.chain([first], it):
            yield cfg.delimiter.join(stringify(v, cfg) for v in row.values()) + cfg.line_terminator

    # -- typed writes --

    def write_records(self, records: Iterable[Any], f: Any) -> int:
        """Write header (if enabled) and one line per record. Returns data lines written."""
        written = 0
        for chunk in self._record_lines(records):
            f.write(chunk)
            written += 1
        return written - 1 if self.config.include_header else written

    def records_to_string(self, records: Iterable[Any]) -> str:
        return "".join(self._record_lines(records))

    def write_records_to_file(self, path: Any, records: Iterable[Any], *, encoding: str = "utf-8") -> int:
        with open(path, "w", encoding=encoding, newline="") as f:
            return self.write_records(records, f)

    async def awrite_records(self, records: Iterable[Any], f: Any) -> int:
        written = 0
        for chunk in self._record_lines(records):
            await _awrite(f, chunk)
            written += 1
        return written - 1 if self.config.include_header else written

    async def arecords_to_string(self, records: Iterable[Any]) -> str:
        buf = io.StringIO()
        await self.awrite_records(records, buf)
        return buf.getvalue()

    async def awrite_records_to_file(self, path: Any, records: Iterable[Any], *, encoding: str = "utf-8") -> int:
        with open(path, "w", encoding=encoding, newline="") as f:
            return await self.awrite_records(records, _ThreadedSink(f))

    # -- generic writes --

    def write_rows(self, rows: Iterable[Mapping[str, Any]], f: Any) -> int:
        """Write header (if enabled, from the first row's keys) and one line per row."""
        written = 0
        header = self.config.include_header
        for chunk in self._row_lines(rows):
            f.write(chunk)
            written += 1
        return written - 1 if header and written else written

    def rows_to_string(self, rows: Iterable[Mapping[str, Any]]) -> str:
        return "".join(self._row_lines(rows))

    def write_rows_to_file(self, path: Any, rows: Iterable[Mapping[str, Any]], *, encoding: str = "utf-8") -> int:
        with open(path, "w", encoding=encoding, newline="") as f:
            return self.write_rows(rows, f)

    async def awrite_rows(self, rows: Iterable[Mapping[str, Any]], f: Any) -> int:
        written = 0
        header = self.config.include_header
        for chunk in self._row_lines(rows):
            await _awrite(f, chunk)
            written += 1
        return written - 1 if header and written else written

    async def arows_to_string(self, rows: Iterable[Mapping[str, Any]]) -> str:
        buf = io.StringIO()
        await self.awrite_rows(rows, buf)
        return buf.getvalue()

    async def awrite_rows_to_file(
        self, path: Any, rows: Iterable[Mapping[str, Any]], *, encoding: str = "utf-8"
    ) -> int:
        with open(path, "w", encoding=encoding, newline="") as f:
            return await self.awrite_rows(rows, _ThreadedSink(f))


# ----------------------------
# Module-level helpers
# ----------------------------

def reader(f: Iterable[str], record_type: type, **options: Any) -> RecordReader:
    return CsvParser(CsvConfig(**options)).iter_records(f, record_type)


def DictReader(f: Iterable[str], **options: Any) -> RowReader:
    return CsvParser(CsvConfig(**options)).iter_rows(f)


def writerecords(f: Any, records: Iterable[Any], **options: Any) -> int:
    return CsvParser(CsvConfig(**options)).write_records(records, f)


def writerows(f: Any, rows: Iterable[Mapping[str, Any]], **options: Any) -> int:
    return CsvParser(CsvConfig(**options)).write_rows(rows, f)


__all__ = [
    "AsyncRecordReader",
    "AsyncRowReader",
    "ColumnMapping",
    "ConversionError",
    "CsvConfig",
    "CsvParser",
    "DEFAULT",
    "DEFAULT_CONFIG",
    "DictReader",
    "EMPTY_HEADER",
    "EmptyColumnMappingError",
    "FieldDescriptor",
    "HeaderCache",
    "RecordReader",
    "ResolvedHeader",
    "Row",
    "RowReader",
    "__version__",
    "coerce",
    "column",
    "describe_instance",
    "describe_record",
    "reader",
    "stringify",
    "writerecords",
    "writerows",
]
