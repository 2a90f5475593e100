"""Pure editing helpers for CamillaDSP configuration documents."""

from camilla_eq.pipeline.block_ids import BlockIdProvider, step_signature
from camilla_eq.pipeline.blocks import (
    NewBlock,
    cleanup_orphan_definitions,
    create_new_filter_step,
    create_new_mixer_block,
    create_new_processor_block,
    set_processor_step_bypassed,
)
from camilla_eq.pipeline.disabled_filters import (
    DisabledFilterLocation,
    DisabledFiltersOverlay,
    DisabledFiltersState,
    FilterSlot,
    JsonFileOverlayStore,
    MemoryOverlayStore,
    OverlayStore,
    parse_step_key,
    reconstruct_filter_order,
    step_key,
)
from camilla_eq.pipeline.filter_enablement import (
    disable_filter,
    disable_filter_everywhere,
    enable_filter,
    enable_filter_everywhere,
    filter_view,
    is_filter_enabled_everywhere,
    remove_filter_definition_if_orphaned,
    remove_filter_from_step,
    reorder_filters_in_step,
)
from camilla_eq.pipeline.reorder import (
    FilterItem,
    ReorderWithDisabledResult,
    array_move,
    insert_pipeline_step,
    moved_index,
    remap_disabled_filters_after_insert,
    remap_disabled_filters_after_remove,
    remap_disabled_filters_after_reorder,
    remove_pipeline_step,
    reorder_filter_names_in_step,
    reorder_filters_with_disabled,
    reorder_pipeline,
)
from camilla_eq.pipeline.steps import (
    MixerValidationResult,
    NormalizedStep,
    PipelineEditError,
    StepKind,
    clone_config,
    normalize_config,
    normalize_pipeline_step,
    validate_config_references,
    validate_mixer_routing,
)

__all__ = [
    "BlockIdProvider",
    "DisabledFilterLocation",
    "DisabledFiltersOverlay",
    "DisabledFiltersState",
    "FilterItem",
    "FilterSlot",
    "JsonFileOverlayStore",
    "MemoryOverlayStore",
    "MixerValidationResult",
    "NewBlock",
    "NormalizedStep",
    "OverlayStore",
    "PipelineEditError",
    "ReorderWithDisabledResult",
    "StepKind",
    "array_move",
    "cleanup_orphan_definitions",
    "clone_config",
    "create_new_filter_step",
    "create_new_mixer_block",
    "create_new_processor_block",
    "disable_filter",
    "disable_filter_everywhere",
    "enable_filter",
    "enable_filter_everywhere",
    "filter_view",
    "insert_pipeline_step",
    "is_filter_enabled_everywhere",
    "moved_index",
    "normalize_config",
    "normalize_pipeline_step",
    "parse_step_key",
    "reconstruct_filter_order",
    "remap_disabled_filters_after_insert",
    "remap_disabled_filters_after_remove",
    "remap_disabled_filters_after_reorder",
    "remove_filter_definition_if_orphaned",
    "remove_filter_from_step",
    "remove_pipeline_step",
    "reorder_filter_names_in_step",
    "reorder_filters_in_step",
    "reorder_filters_with_disabled",
    "reorder_pipeline",
    "set_processor_step_bypassed",
    "step_key",
    "step_signature",
    "validate_config_references",
    "validate_mixer_routing",
]
