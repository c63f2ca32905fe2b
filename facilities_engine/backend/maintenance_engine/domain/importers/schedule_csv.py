# backend/maintenance_engine/domain/importers/schedule_csv.py
from __future__ import annotations

from ...errors import ValidationError
from ...schemas import ImportRow
from .base import cell, find_column, find_columns, parse_csv_bytes


def normalize_schedule_csv(data: bytes) -> list[ImportRow]:
    """
    Normalize a restaurant service-schedule spreadsheet export into ImportRows.

    Columns are located by header substring:
      - RESTAURANT, SERVICE TYPE, LAST SERVICED, FREQUENCY, SCHEDULING, NOTES
      - every "NEXT SERVICE" column (except ones naming a FREQUENCY) adds a date

    Exports list one restaurant over several service rows, leaving the
    RESTAURANT cell blank after the first; blanks take the previous value.
    """
    rows = parse_csv_bytes(data)
    if len(rows) < 2:
        raise ValidationError("CSV file must have a header row and at least one data row")

    headers = rows[0]
    restaurant_i = find_column(headers, "RESTAURANT")
    service_i = find_column(headers, "SERVICE TYPE")
    last_i = find_column(headers, "LAST SERVICED")
    next_is = find_columns(headers, "NEXT SERVICE", exclude=("FREQUENCY",))
    frequency_i = find_column(headers, "FREQUENCY")
    scheduling_i = find_column(headers, "SCHEDULING")
    notes_i = find_column(headers, "NOTES")

    if restaurant_i is None or service_i is None:
        raise ValidationError("CSV must include RESTAURANT and SERVICE TYPE columns")

    out: list[ImportRow] = []
    current_restaurant = ""
    for row in rows[1:]:
        restaurant = cell(row, restaurant_i)
        if restaurant:
            current_restaurant = restaurant

        out.append(
            ImportRow(
                restaurant=current_restaurant,
                service_type=cell(row, service_i),
                last_serviced=cell(row, last_i),
                next_service_dates=[v for v in (cell(row, i) for i in next_is) if v],
                frequency_label=cell(row, frequency_i).upper(),
                scheduling=cell(row, scheduling_i),
                notes=cell(row, notes_i),
            )
        )
    return out
