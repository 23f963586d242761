from .descriptor import PlotDescriptor, ChartOptions, DescriptorError
from .projection import project_data, ProjectedData, DataRow, Diagnostic, FieldKind
from .analyzer import analyze_layers, LayerAnalysis, LayerKind, LayerRequest
from .scales import ScaleSpec, ScaleKind
from .config import CompilerConfig, default_config, DEFAULT_PALETTE, VEGA_SCHEMA_URL
from .vega_codegen import build_layer, BuildContext, LayerFragment
from .assembler import assemble_spec, VisualizationSpec
from .legend import augment_legend
from .validate import check_scale_references, SpecContractError
from .compiler import compile_plot, compile_to_vega, CompileResult
from .export import write_vega_files

__all__ = [
    'PlotDescriptor',
    'ChartOptions',
    'DescriptorError',
    'project_data',
    'ProjectedData',
    'DataRow',
    'Diagnostic',
    'FieldKind',
    'analyze_layers',
    'LayerAnalysis',
    'LayerKind',
    'LayerRequest',
    'ScaleSpec',
    'ScaleKind',
    'CompilerConfig',
    'default_config',
    'DEFAULT_PALETTE',
    'VEGA_SCHEMA_URL',
    'build_layer',
    'BuildContext',
    'LayerFragment',
    'assemble_spec',
    'VisualizationSpec',
    'augment_legend',
    'check_scale_references',
    'SpecContractError',
    'compile_plot',
    'compile_to_vega',
    'CompileResult',
    'write_vega_files',
]
