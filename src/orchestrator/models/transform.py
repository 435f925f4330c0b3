"""Schema models for reshaping connector payloads.

These Pydantic models describe how raw purchase-history payloads returned
by a data connector are located and mapped onto normalized order fields.
Brand configuration files use camelCase keys (``dataPath``,
``fieldMappings``); both spellings are accepted.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

TransformType = Literal["currency", "date", "image", "string", "array"]


class FieldMapping(BaseModel):
    """Single mapping from a source path to an output key.

    Attributes:
        output_key: Key name in the transformed record (e.g., "order_total").
        source_path: Dot-notation path inside one raw item (e.g., "total").
        transform: Optional transform applied to the resolved value.
        default_value: Fallback when the source value is missing.
        format_template: Template used by currency and string transforms.
        convert_to_array: Wrap scalar results in a single-element list.

    Example:
        FieldMapping(
            output_key="order_total",
            source_path="total",
            transform="currency",
            format_template="{symbol}{amount}",
        )
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    output_key: str = Field(
        ...,
        alias="outputKey",
        description="Key name in the transformed record",
    )
    source_path: str = Field(
        ...,
        alias="sourcePath",
        description="Dot-notation path inside one raw item",
    )
    transform: Optional[TransformType] = Field(
        default=None,
        description="Transform applied to the resolved value",
    )
    default_value: Optional[str] = Field(
        default=None,
        alias="defaultValue",
        description="Fallback when the source value is missing",
    )
    format_template: Optional[str] = Field(
        default=None,
        alias="formatTemplate",
        description="Template for currency/string transforms",
    )
    convert_to_array: bool = Field(
        default=False,
        alias="convertToArray",
        description="Wrap scalar results in a list",
    )


class DataTransformSchema(BaseModel):
    """Locates the item list in a payload and maps each item.

    Attributes:
        data_path: Dot-notation path to the items list, used when the
            payload is not already a list.
        field_mappings: Ordered mappings applied to every item.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    data_path: str = Field(
        default="",
        alias="dataPath",
        description="Path to the items list inside a raw payload",
    )
    field_mappings: tuple[FieldMapping, ...] = Field(
        ...,
        alias="fieldMappings",
        description="Mappings applied to every item",
    )

    @field_validator("field_mappings")
    @classmethod
    def _require_mappings(
        cls, value: tuple[FieldMapping, ...]
    ) -> tuple[FieldMapping, ...]:
        if not value:
            raise ValueError("fieldMappings must not be empty")
        return value
