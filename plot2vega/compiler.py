"""Descriptor to Vega compilation pipeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .analyzer import LayerAnalysis, LayerRequest, analyze_layers
from .assembler import VisualizationSpec, assemble_spec
from .config import CompilerConfig, default_config
from .descriptor import ChartOptions, PlotDescriptor
from .legend import augment_legend
from .logging_utils import debug_log_call
from .projection import Diagnostic, ProjectedData, project_data
from .vega_codegen import BuildContext, LayerFragment, build_layer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompileResult:
    spec: VisualizationSpec
    diagnostics: Tuple[Diagnostic, ...]
    requests: Tuple[LayerRequest, ...]
    data: ProjectedData

    def to_vega(self) -> Dict[str, Any]:
        return self.spec.to_vega()


@debug_log_call(logger, name="compiler.project")
def _project(descriptor: PlotDescriptor) -> ProjectedData:
    return project_data(
        descriptor.x,
        descriptor.y,
        descriptor.color,
        ymin=descriptor.ymin,
        ymax=descriptor.ymax,
    )


@debug_log_call(logger, name="compiler.analyze")
def _analyze(descriptor: PlotDescriptor) -> LayerAnalysis:
    return analyze_layers(descriptor)


@debug_log_call(logger, name="compiler.build", log_result=False)
def _build(
    requests: Sequence[LayerRequest], data: ProjectedData, context: BuildContext
) -> Tuple[List[LayerFragment], List[Diagnostic]]:
    fragments: List[LayerFragment] = []
    diagnostics: List[Diagnostic] = []
    for request in requests:
        fragment = build_layer(request, data, context)
        if fragment.is_empty:
            diagnostics.append(
                Diagnostic("empty-layer", f"{request.kind.value}: {fragment.note or 'no marks'}")
            )
        elif fragment.note:
            diagnostics.append(Diagnostic("partial-layer", f"{request.kind.value}: {fragment.note}"))
        fragments.append(fragment)
    return fragments, diagnostics


def compile_plot(
    descriptor: Union[PlotDescriptor, Mapping[str, Any]],
    options: Optional[ChartOptions] = None,
    config: Optional[CompilerConfig] = None,
) -> CompileResult:
    """Compile a plot descriptor into a layered Vega specification.

    ``descriptor`` may also be a plain mapping accepted by
    :meth:`PlotDescriptor.from_mapping`.  Data problems never raise; they are
    reported in :attr:`CompileResult.diagnostics`.
    """

    if not isinstance(descriptor, PlotDescriptor):
        descriptor = PlotDescriptor.from_mapping(descriptor)
    options = options or ChartOptions()
    config = config or default_config()

    data = _project(descriptor)
    analysis = _analyze(descriptor)
    context = BuildContext(config=config, jitter_seed=options.jitter_seed)
    fragments, build_diagnostics = _build(analysis.requests, data, context)
    spec, merge_diagnostics = assemble_spec(fragments, data, options, config)
    spec = augment_legend(spec, config, interactive=options.interactive)

    diagnostics = (
        tuple(data.diagnostics)
        + tuple(analysis.diagnostics)
        + tuple(build_diagnostics)
        + tuple(merge_diagnostics)
    )
    logger.info(
        "Compiled %d layer(s) over %d row(s) with %d diagnostic(s)",
        len(analysis.requests),
        len(data.rows),
        len(diagnostics),
    )
    return CompileResult(
        spec=spec,
        diagnostics=diagnostics,
        requests=analysis.requests,
        data=data,
    )


def compile_to_vega(
    descriptor: Union[PlotDescriptor, Mapping[str, Any]],
    options: Optional[ChartOptions] = None,
    config: Optional[CompilerConfig] = None,
) -> Dict[str, Any]:
    return compile_plot(descriptor, options, config).to_vega()
