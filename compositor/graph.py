"""
Typed FFmpeg filter graph

Stages reference stream inputs and labelled pads as values, never as
strings. `FilterGraph.serialize()` is the only place that produces
`-filter_complex` text, and it owns all escaping of parameter values.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Tuple, Union


class GraphError(Exception):
    """Raised when a filter graph is structurally invalid."""
    pass


@dataclass(frozen=True)
class InputRef:
    """A stream of a numbered input, e.g. [0:v]"""
    index: int
    stream: str = "v"

    def text(self) -> str:
        return f"[{self.index}:{self.stream}]"


@dataclass(frozen=True)
class Label:
    """A named pad between two stages, e.g. [base]"""
    name: str

    def text(self) -> str:
        return f"[{self.name}]"


Pad = Union[InputRef, Label]


def format_value(value: Any) -> str:
    """Render a parameter value deterministically (no exponent, no trailing zeros)."""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return ("%.4f" % value).rstrip("0").rstrip(".")
    return str(value)


def escape_option_value(value: str) -> str:
    """Escape a value for the filter option parser (key=value:key=value)."""
    out = value.replace("\\", "\\\\")
    out = out.replace("'", "\\'")
    return out.replace(":", "\\:")


def escape_graph_text(text: str) -> str:
    """Escape a filter argument string for the filtergraph parser."""
    out = text.replace("\\", "\\\\")
    for ch in ("'", "[", "]", ",", ";"):
        out = out.replace(ch, "\\" + ch)
    return out


@dataclass(frozen=True)
class Filter:
    """
    One FFmpeg filter with ordered parameters.

    Attributes:
        name: Filter name (scale, overlay, drawtext...)
        args: Positional values, emitted before keyed params
        params: Ordered (key, value) pairs
        raw: Pre-formatted filter text (preset expressions), emitted verbatim
    """
    name: str
    args: Tuple[Any, ...] = ()
    params: Tuple[Tuple[str, Any], ...] = ()
    raw: Optional[str] = None

    @classmethod
    def of(cls, name: str, *args: Any, **params: Any) -> "Filter":
        """Build a filter, dropping params whose value is None"""
        pairs = tuple((k, v) for k, v in params.items() if v is not None)
        return cls(name=name, args=tuple(args), params=pairs)

    def param(self, key: str) -> Any:
        for k, v in self.params:
            if k == key:
                return v
        return None

    def serialize(self) -> str:
        if self.raw is not None:
            return self.raw

        parts = [escape_option_value(format_value(a)) for a in self.args]
        parts += [f"{k}={escape_option_value(format_value(v))}" for k, v in self.params]
        if not parts:
            return self.name
        return f"{self.name}={escape_graph_text(':'.join(parts))}"


@dataclass(frozen=True)
class Stage:
    """
    A linear filter chain from input pads to one output label.

    Attributes:
        name: Human-readable purpose, used in errors and logs
        inputs: Pads consumed, in order
        filters: Filters applied in sequence
        output: Label produced
    """
    name: str
    inputs: Tuple[Pad, ...]
    filters: Tuple[Filter, ...]
    output: Label

    def serialize(self) -> str:
        pads = "".join(p.text() for p in self.inputs)
        chain = ",".join(f.serialize() for f in self.filters)
        return f"{pads}{chain}{self.output.text()}"


@dataclass(frozen=True)
class FilterGraph:
    """Immutable ordered list of stages"""
    stages: Tuple[Stage, ...] = field(default_factory=tuple)

    def add(self, stage: Stage) -> "FilterGraph":
        return FilterGraph(stages=self.stages + (stage,))

    def produces(self, label: Optional[Label]) -> bool:
        if label is None:
            return False
        return any(s.output == label for s in self.stages)

    def consumers(self, label: Label) -> List[str]:
        """Names of the stages taking `label` as an input"""
        return [s.name for s in self.stages if label in s.inputs]

    def is_terminal(self, label: Optional[Label]) -> bool:
        """True if `label` is produced and no stage consumes it, so -map can use it"""
        return self.produces(label) and not self.consumers(label)

    @property
    def labels(self) -> List[Label]:
        return [s.output for s in self.stages]

    def index_of(self, label: Label) -> int:
        """Position of the stage producing `label`, -1 if absent"""
        for i, stage in enumerate(self.stages):
            if stage.output == label:
                return i
        return -1

    def validate(
        self,
        final_label: Label,
        input_count: Optional[int] = None,
        extra_outputs: Iterable[Label] = ()
    ) -> None:
        """
        Check the graph is well formed before it is serialized.

        Args:
            final_label: Label left unconsumed for -map
            input_count: Number of declared -i inputs, to bound InputRef indices
            extra_outputs: Other labels mapped directly (e.g. an audio pad)

        Raises:
            GraphError: On duplicate labels, use before definition, labels
                consumed twice, dangling labels or out-of-range inputs
        """
        produced = set()
        consumed = set()

        for stage in self.stages:
            if not stage.filters:
                raise GraphError(f"Stage '{stage.name}' has no filters")

            for pad in stage.inputs:
                if isinstance(pad, InputRef):
                    if input_count is not None and not 0 <= pad.index < input_count:
                        raise GraphError(
                            f"Stage '{stage.name}' references input {pad.index}, "
                            f"only {input_count} declared"
                        )
                    continue
                if pad not in produced:
                    raise GraphError(f"Stage '{stage.name}' consumes undefined label {pad.text()}")
                if pad in consumed:
                    raise GraphError(f"Label {pad.text()} consumed twice (stage '{stage.name}')")
                consumed.add(pad)

            if stage.output in produced:
                raise GraphError(f"Duplicate label {stage.output.text()} (stage '{stage.name}')")
            produced.add(stage.output)

        outputs = {final_label, *extra_outputs}
        if self.stages:
            for label in outputs:
                if label not in produced:
                    raise GraphError(f"Output label {label.text()} is not produced by the graph")

        dangling = produced - consumed - outputs
        if dangling:
            names = ", ".join(sorted(l.text() for l in dangling))
            raise GraphError(f"Labels produced but never consumed: {names}")

    def serialize(self) -> str:
        return ";".join(stage.serialize() for stage in self.stages)


def parse_chain(expression: str) -> List[Filter]:
    """
    Split a filter chain expression into raw filters.

    Commas inside single quotes or after a backslash do not split.
    Empty pieces are dropped.

    Args:
        expression: e.g. "hue=s=0,eq=contrast=1.2"

    Returns:
        List of Filter objects carrying the original text
    """
    filters = []
    current = []
    quoted = False
    escaped = False

    def flush():
        piece = "".join(current).strip()
        current.clear()
        if piece:
            name = piece.split("=", 1)[0].strip()
            filters.append(Filter(name=name, raw=piece))

    for ch in expression:
        if escaped:
            current.append(ch)
            escaped = False
        elif ch == "\\":
            current.append(ch)
            escaped = True
        elif ch == "'":
            current.append(ch)
            quoted = not quoted
        elif ch == "," and not quoted:
            flush()
        else:
            current.append(ch)
    flush()

    if quoted:
        raise GraphError(f"Unbalanced quote in filter expression: {expression}")
    return filters


def parse_graph_labels(text: str) -> List[Tuple[List[str], List[str]]]:
    """
    Recover (consumed, produced) label names for each stage of serialized text.

    Stream inputs such as "0:v" are reported too; callers filter on ':'.
    """
    stages = []
    for chunk in _split_unescaped(text, ";"):
        chunk = chunk.strip()
        consumed = []
        while chunk.startswith("["):
            end = chunk.index("]")
            consumed.append(chunk[1:end])
            chunk = chunk[end + 1:]
        produced = []
        while chunk.endswith("]") and not chunk.endswith("\\]"):
            start = chunk.rindex("[")
            produced.insert(0, chunk[start + 1:-1])
            chunk = chunk[:start]
        stages.append((consumed, produced))
    return stages


def _split_unescaped(text: str, sep: str) -> Iterable[str]:
    piece = []
    escaped = False
    for ch in text:
        if escaped:
            piece.append(ch)
            escaped = False
        elif ch == "\\":
            piece.append(ch)
            escaped = True
        elif ch == sep:
            yield "".join(piece)
            piece = []
        else:
            piece.append(ch)
    yield "".join(piece)
