"""Static brand descriptors for connectable retailers and services."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from src.orchestrator.models.transform import DataTransformSchema

SignInVariant = Literal["resource", "form", "hosted_link"]


class SchemaField(BaseModel):
    """One input the connector may ask for during sign-in.

    Attributes:
        name: Form field name posted to the connector (e.g., "email").
        type: Input type; "click" entries are buttons, not form inputs.
        prompt: Label shown to the user.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    type: str = "text"
    prompt: str = ""


class BrandConfig(BaseModel):
    """Descriptor for a connectable brand.

    Attributes:
        brand_id: Unique key used in URLs and pool keys (e.g., "amazon").
        brand_name: Display name; also the merge key for aggregated orders.
        logo_url: Logo shown on the sign-in surface.
        is_mandatory: UI hint only.
        is_dpage: Use the embedded-resource sign-in surface.
        fields: Sign-in inputs, YAML key ``schema``.
        data_transform: Schema for normalizing the connector payload.
        mcp_path: Sub-path on the connector service for this brand.
        tools: Tool names; index 0 fetches purchase history, index 1
            (optional) fetches order details.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    brand_id: str = Field(..., min_length=1)
    brand_name: str = Field(..., min_length=1)
    logo_url: str = ""
    is_mandatory: bool = False
    is_dpage: bool = False
    fields: tuple[SchemaField, ...] = Field(default=(), alias="schema")
    data_transform: DataTransformSchema = Field(..., alias="dataTransform")
    mcp_path: str = "mcp"
    tools: tuple[str, ...] = ()

    @property
    def credential_fields(self) -> tuple[SchemaField, ...]:
        """Inputs rendered in a credential form (click entries excluded)."""
        return tuple(f for f in self.fields if f.type != "click")

    @property
    def signin_variant(self) -> SignInVariant:
        """Which sign-in surface this brand uses."""
        if self.is_dpage:
            return "resource"
        if self.credential_fields:
            return "form"
        return "hosted_link"

    @property
    def history_tool(self) -> str | None:
        return self.tools[0] if self.tools else None

    @property
    def details_tool(self) -> str | None:
        return self.tools[1] if len(self.tools) > 1 else None
