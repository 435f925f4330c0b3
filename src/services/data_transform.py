"""Schema-driven transformation of raw connector payloads.

Connectors return purchase history in inconsistent shapes: some hand back
a pre-processed list, others a GraphQL-style document that needs the item
list extracted via ``DataTransformSchema.data_path``. ``transform_data``
locates the items and applies each ``FieldMapping``.

``transform_data`` never raises. Any failure is logged and results in an
empty list so a malformed upstream payload cannot break the caller.

Example:
    schema = DataTransformSchema.model_validate({
        "dataPath": "content.items",
        "fieldMappings": [{"outputKey": "order_id", "sourcePath": "id"}],
    })
    records = transform_data(payload, schema)
"""

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Union

from dateutil import parser as date_parser

from src.orchestrator.models.purchase import PurchaseHistory
from src.orchestrator.models.transform import DataTransformSchema, FieldMapping
from src.services.data_path import ABSENT, evaluate, parse_path

logger = logging.getLogger(__name__)

TransformedValue = Union[str, datetime, None, list[Union[str, datetime, None]]]
TransformedRecord = dict[str, TransformedValue]

# "Ordered On: June 4, 2025Wayfair Order #4325262636"
_ORDERED_ON_PATTERN = re.compile(r"Ordered On:\s*(\w+ \d+, \d+)", re.IGNORECASE)
# "Return closed on March 3, 2024"
_CLOSED_ON_PATTERN = re.compile(r"closed on (\w+ \d+, \d+)")

_DEFAULT_CURRENCY_TEMPLATE = "{symbol}{amount}"


def stringify(value: Any) -> str:
    """Render a decoded JSON value as display text.

    Booleans render lowercase and whole floats drop the trailing ``.0`` so
    values read the same as they do in the connector payload.

    Args:
        value: Any decoded JSON value.

    Returns:
        String form of value.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def _parse_month_day_year(text: str) -> datetime | None:
    try:
        return date_parser.parse(text)
    except (ValueError, OverflowError):
        return None


def parse_order_date(text: str) -> datetime | None:
    """Extract the date from an "Ordered On: <Month D, YYYY>" label.

    Args:
        text: Raw order label.

    Returns:
        Parsed datetime, or None if the label does not match.
    """
    match = _ORDERED_ON_PATTERN.search(text)
    if match:
        return _parse_month_day_year(match.group(1))
    return None


def parse_return_date(text: str) -> datetime | None:
    """Extract the date from a "closed on <Month D, YYYY>" label."""
    match = _CLOSED_ON_PATTERN.search(text)
    if match:
        return _parse_month_day_year(match.group(1))
    return None


def parse_date_value(value: Any) -> datetime | str | None:
    """Parse one date-like value.

    Strings try the order label, then the return label, then generic
    parsing. Numbers are epoch milliseconds. Mappings carrying a
    ``displayDate`` yield that text unchanged.

    Args:
        value: Raw date value.

    Returns:
        A datetime, the displayDate string, or None when unparseable.
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        parsed = parse_order_date(value) or parse_return_date(value)
        if parsed is not None:
            return parsed
        try:
            return date_parser.parse(value)
        except (ValueError, OverflowError):
            logger.debug("Unparseable date value: %r", value)
            return None
    if isinstance(value, dict):
        if value.get("displayDate"):
            return stringify(value["displayDate"])
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            return None
    return None


def _format_currency(value: Any, template: str | None) -> str:
    if isinstance(value, dict) and value.get("currency") and value.get("amount"):
        currency = value["currency"]
        symbol = currency.get("symbol") if isinstance(currency, dict) else None
        return (
            (template or _DEFAULT_CURRENCY_TEMPLATE)
            .replace("{symbol}", stringify(symbol or "$"), 1)
            .replace("{amount}", stringify(value["amount"] or "0.00"), 1)
        )
    return stringify(value)


def _format_string(value: Any, template: str | None) -> str:
    # "${value}" keeps its leading "$", e.g. "${value}" -> "$12"
    if template and "{value}" in template:
        return template.replace("{value}", stringify(value), 1)
    return stringify(value)


def _convert(value: Any, mapping: FieldMapping) -> TransformedValue:
    transform = mapping.transform

    if transform == "currency":
        return _format_currency(value, mapping.format_template)

    if transform == "string":
        return _format_string(value, mapping.format_template)

    if transform == "image":
        if isinstance(value, list):
            return [item for item in value if item and isinstance(item, str)]
        return stringify(value)

    if transform == "date":
        if isinstance(value, list):
            return [
                parse_date_value(item) if isinstance(item, str) else item
                for item in value
            ]
        return parse_date_value(value)

    if transform == "array":
        if isinstance(value, list):
            return [stringify(item) for item in value]
        return [stringify(value)]

    if isinstance(value, list):
        return [stringify(item) for item in value]
    return stringify(value)


def apply_transform(value: Any, mapping: FieldMapping) -> TransformedValue:
    """Apply a mapping's transform to one resolved value.

    Args:
        value: Value resolved from ``mapping.source_path`` (None or ABSENT
            when missing).
        mapping: Field mapping being applied.

    Returns:
        Transformed value, wrapped in a list when ``convert_to_array``.
    """
    if value is None or value is ABSENT:
        default = mapping.default_value or ""
        return [default] if mapping.convert_to_array else default

    result = _convert(value, mapping)
    if mapping.convert_to_array and not isinstance(result, list):
        return [result]
    return result


def transform_data(
    raw_data: Any,
    schema: DataTransformSchema,
) -> list[TransformedRecord]:
    """Transform a raw connector payload into flat records.

    Args:
        raw_data: Either the item list itself or a document containing it
            at ``schema.data_path``.
        schema: Transform schema for the brand.

    Returns:
        One dict per item keyed by each mapping's ``output_key``. Empty
        when the items cannot be located or anything goes wrong.
    """
    try:
        if isinstance(raw_data, list):
            items = raw_data
        else:
            items = evaluate(parse_path(schema.data_path), raw_data)

        if not isinstance(items, list):
            logger.warning(
                "Data path does not resolve to an array: data_path=%s",
                schema.data_path,
            )
            return []

        source_paths = [
            (mapping, parse_path(mapping.source_path))
            for mapping in schema.field_mappings
        ]
        records: list[TransformedRecord] = []
        for item in items:
            record: TransformedRecord = {}
            for mapping, expression in source_paths:
                raw_value = evaluate(expression, item)
                record[mapping.output_key] = apply_transform(raw_value, mapping)
            records.append(record)
        return records
    except Exception as e:
        logger.error(
            "Error transforming data: %s: %s", type(e).__name__, e,
            exc_info=True,
        )
        return []


def _as_str_list(value: TransformedValue) -> list[str]:
    if value is None or value == "":
        return []
    if not isinstance(value, list):
        value = [value]
    return [
        item if isinstance(item, str) else stringify(item)
        for item in value
        if item is not None and item != ""
    ]


def _as_date(value: TransformedValue) -> datetime | None:
    if isinstance(value, list):
        value = next((item for item in value if isinstance(item, datetime)), None)
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        parsed = parse_date_value(value)
        return parsed if isinstance(parsed, datetime) else None
    return None


def to_purchase_history(
    records: list[TransformedRecord],
    brand_name: str,
) -> list[PurchaseHistory]:
    """Coerce transformed records into PurchaseHistory models.

    Records without an order id are skipped with a warning.

    Args:
        records: Output of ``transform_data``.
        brand_name: Brand display name stamped on every order.

    Returns:
        Normalized orders in input order.
    """
    orders: list[PurchaseHistory] = []
    for index, record in enumerate(records):
        order_id = record.get("order_id")
        if isinstance(order_id, list):
            order_id = order_id[0] if order_id else ""
        if not order_id:
            logger.warning(
                "Skipping %s record %d without order_id", brand_name, index,
            )
            continue
        total = record.get("order_total")
        orders.append(
            PurchaseHistory(
                brand=brand_name,
                order_date=_as_date(record.get("order_date")),
                order_total=stringify(total) if not isinstance(total, str) else total,
                order_id=stringify(order_id) if not isinstance(order_id, str) else order_id,
                product_names=_as_str_list(record.get("product_names")),
                image_urls=_as_str_list(record.get("image_urls")),
            )
        )
    return orders
