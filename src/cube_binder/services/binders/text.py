"""Raw and text binders: no reference table, nothing to validate."""

from ...shared.models import DimensionType, RawPatchRequest, TextExtractor, TextPatchRequest
from .base import BindingContext, BindingResult, DimensionBinder


class RawBinder(DimensionBinder):
    dimension_types = (DimensionType.RAW,)

    async def bind(self, ctx: BindingContext, request: RawPatchRequest) -> BindingResult:
        return BindingResult(dimension_type=DimensionType.RAW)


class TextBinder(DimensionBinder):
    dimension_types = (DimensionType.TEXT,)

    async def bind(self, ctx: BindingContext, request: TextPatchRequest) -> BindingResult:
        return BindingResult(dimension_type=DimensionType.TEXT, extractor=TextExtractor())
