"""Tool registry, shared execution context and the pipeline entry point."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

from .backends import Backends
from .composer import DocumentComposer, classify_failure
from .config import DEFAULT_CONFIG, PipelineConfig
from .converter import FormatConverter
from .exceptions import DecodeFailure, PipelineError
from .packager import package
from .progress import CancellationToken, ItemStatusCallback, ProgressCallback, ProgressReporter
from .types import (
    ConversionRequest,
    OutputArtifact,
    PipelineResult,
    PipelineSettings,
    SizeStats,
    SourceAsset,
)
from .utils import build_assets, describe_source

LOGGER = logging.getLogger("pdfcomposex.pipeline")

AssetHandler = Callable[[SourceAsset, ProgressReporter], Awaitable[List[OutputArtifact]]]


@dataclass
class PipelineContext:
    """Holds shared execution state for a tool invocation."""

    assets: List[SourceAsset]
    requests: List[ConversionRequest] = field(default_factory=list)
    settings: PipelineSettings = field(default_factory=PipelineSettings)
    reporter: ProgressReporter = field(default_factory=ProgressReporter)
    backends: Backends = field(default_factory=Backends)
    config: PipelineConfig = field(default_factory=lambda: DEFAULT_CONFIG)
    warnings: List[str] = field(default_factory=list)
    stats: Optional[SizeStats] = None

    def __post_init__(self) -> None:
        self.converter = FormatConverter(self.backends, self.config)
        self.composer = DocumentComposer(self.backends, self.config, converter=self.converter)

    @property
    def is_batch(self) -> bool:
        return len(self.assets) > 1


class BaseTool:
    """Base class for all pluggable pipeline tools."""

    name: str
    # Sources whose type cannot be sniffed are passed through to be rejected
    # per item instead of failing the whole call.
    strict_sources: bool = True

    def __init__(self, context: PipelineContext) -> None:
        self.context = context

    async def run(self) -> List[OutputArtifact]:  # pragma: no cover - to be implemented by subclasses
        raise NotImplementedError

    async def each_asset(self, handler: AssetHandler) -> List[OutputArtifact]:
        """Run *handler* on every asset in order.

        Decode failures are fatal for a single source; in a batch they become
        warnings and the remaining sources are still processed.
        """

        context = self.context
        reporter = context.reporter
        total = len(context.assets)
        results: List[OutputArtifact] = []

        for index, asset in enumerate(context.assets):
            reporter.item(index, "processing")
            scoped = reporter.scoped(index / total * 95, 95 / total)
            try:
                results.extend(await handler(asset, scoped))
            except DecodeFailure as exc:
                if not context.is_batch:
                    raise
                reason = classify_failure(exc)
                LOGGER.warning("Skipping %s: %s", describe_source(asset), exc)
                context.warnings.append(f"{describe_source(asset)}: {reason}")
            reporter.item(index, "done")
            await reporter.checkpoint()

        return results


class ToolRegistry:
    """Registry storing available pipeline tools."""

    def __init__(self) -> None:
        self._tools: Dict[str, type[BaseTool]] = {}

    def register(self, name: str, tool_class: type[BaseTool]) -> None:
        if name in self._tools:
            raise ValueError(f"Tool '{name}' is already registered")
        self._tools[name] = tool_class

    def create(self, name: str, context: PipelineContext) -> BaseTool:
        try:
            tool_class = self._tools[name]
        except KeyError as exc:
            raise KeyError(f"Tool '{name}' is not registered") from exc
        return tool_class(context)

    def names(self) -> Iterable[str]:
        return sorted(self._tools.keys())

    def get(self, name: str) -> type[BaseTool] | None:
        return self._tools.get(name)


registry = ToolRegistry()


def register_tool(name: str):
    def decorator(cls: type[BaseTool]) -> type[BaseTool]:
        cls.name = name
        registry.register(name, cls)
        return cls

    return decorator


def load_builtin_tools() -> None:
    from . import tools  # noqa: F401  # registers convert, merge, insert, rotate, ...


async def run_pipeline(
    tool: str,
    requests: Sequence[ConversionRequest],
    settings: Optional[PipelineSettings] = None,
    *,
    on_progress: Optional[ProgressCallback] = None,
    on_item_status: Optional[ItemStatusCallback] = None,
    cancel_token: Optional[CancellationToken] = None,
    backends: Optional[Backends] = None,
    config: Optional[PipelineConfig] = None,
) -> PipelineResult:
    """Run *tool* over *requests* and package what it produces.

    Returns one artifact, or an archive bundle when several artifacts
    result, together with per-source warnings. Whole-call failures raise a
    :class:`~pdfcomposex.exceptions.PDFComposeXError` and return nothing.
    """

    load_builtin_tools()
    tool_class = registry.get(tool)
    if tool_class is None:
        raise KeyError(f"Tool '{tool}' is not registered")
    if not requests:
        raise PipelineError("No files selected")

    reporter = ProgressReporter(on_progress, on_item_status, cancel_token=cancel_token)
    context = PipelineContext(
        assets=build_assets(requests, strict=tool_class.strict_sources),
        requests=list(requests),
        settings=settings or PipelineSettings(),
        reporter=reporter,
        backends=backends or Backends(),
        config=config or DEFAULT_CONFIG,
    )

    LOGGER.debug("Running tool %s on %d source(s)", tool, len(context.assets))
    artifacts = await registry.create(tool, context).run()
    reporter.cancel_token.raise_if_cancelled()
    if not artifacts:
        raise PipelineError("No files processed.")

    if len(artifacts) > 1:
        reporter.report(98, "Zipping files...")
    bundle = package(artifacts)
    reporter.report(100, "Done")

    LOGGER.info(
        "Tool %s produced %d artifact(s) with %d warning(s)",
        tool,
        len(bundle.artifacts),
        len(context.warnings),
    )
    return PipelineResult(
        bundle=bundle,
        warnings=list(context.warnings),
        fallbacks=list(context.converter.fallbacks),
        stats=context.stats,
    )


__all__ = [
    "PipelineContext",
    "BaseTool",
    "ToolRegistry",
    "registry",
    "register_tool",
    "load_builtin_tools",
    "run_pipeline",
]
