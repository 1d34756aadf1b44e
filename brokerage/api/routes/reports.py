from __future__ import annotations

import io
from datetime import date, datetime, timezone
from typing import Optional
from uuid import UUID

import pandas as pd
from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.deps import get_current_actor, get_db_session, get_platform_admin
from brokerage.core.errors import ValidationError
from brokerage.core.policy import Actor
from brokerage.repositories.transactions import TransactionFilters
from brokerage.services.reports import ReportService

# PUBLIC_INTERFACE
router = APIRouter(
    prefix="/reports",
    tags=["Reports"],
)

EXPORT_FORMATS = ("csv", "xlsx", "pdf")


def _export_dataframe(
    df: pd.DataFrame,
    filename_base: str,
    export_format: str,
) -> StreamingResponse:
    """
    Convert DataFrame to the requested format and return a StreamingResponse.

    Supported formats:
      - csv: text/csv
      - xlsx: application/vnd.openxmlformats-officedocument.spreadsheetml.sheet
      - pdf: application/pdf (simple tabular rendering)
    """
    export_format = (export_format or "csv").lower()
    if export_format not in EXPORT_FORMATS:
        raise ValidationError(f"format must be one of {list(EXPORT_FORMATS)}", details={"format": export_format})

    if export_format == "xlsx":
        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            df.to_excel(writer, index=False, sheet_name="Report")
        buffer.seek(0)
        headers = {"Content-Disposition": f'attachment; filename="{filename_base}.xlsx"'}
        return StreamingResponse(
            buffer,
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers=headers,
        )

    if export_format == "pdf":
        from reportlab.lib import colors
        from reportlab.lib.pagesizes import landscape, letter
        from reportlab.lib.styles import getSampleStyleSheet
        from reportlab.platypus import Paragraph, SimpleDocTemplate, Table, TableStyle

        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer, pagesize=landscape(letter), leftMargin=18, rightMargin=18, topMargin=18, bottomMargin=18
        )
        styles = getSampleStyleSheet()
        stamp = datetime.now(tz=timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
        elements: list = [Paragraph(f"{filename_base.replace('_', ' ').title()} ({stamp})", styles["Title"])]

        data = [list(df.columns)] + df.astype(str).values.tolist()
        table = Table(data, repeatRows=1)
        table.setStyle(
            TableStyle(
                [
                    ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
                    ("TEXTCOLOR", (0, 0), (-1, 0), colors.black),
                    ("ALIGN", (0, 0), (-1, -1), "LEFT"),
                    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                    ("FONTSIZE", (0, 0), (-1, -1), 7),
                    ("BOTTOMPADDING", (0, 0), (-1, 0), 6),
                    ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
                ]
            )
        )
        elements.append(table)
        doc.build(elements)
        buffer.seek(0)
        headers = {"Content-Disposition": f'attachment; filename="{filename_base}.pdf"'}
        return StreamingResponse(buffer, media_type="application/pdf", headers=headers)

    text_buffer = io.StringIO()
    df.to_csv(text_buffer, index=False)
    text_buffer.seek(0)
    headers = {"Content-Disposition": f'attachment; filename="{filename_base}.csv"'}
    return StreamingResponse(text_buffer, media_type="text/csv", headers=headers)


# PUBLIC_INTERFACE
@router.get(
    "/transactions",
    summary="Transactions report",
    description="Exports the caller's visible transactions with their commission split.",
    response_description="File stream (CSV/XLSX/PDF)",
)
async def transactions_report(
    organization_id: Optional[UUID] = Query(None),
    agent_id: Optional[UUID] = Query(None),
    year: Optional[int] = Query(None, ge=1900, le=9999),
    month: Optional[int] = Query(None, ge=1, le=12),
    format: str = Query("csv", description="Export format: csv | xlsx | pdf"),
    actor: Actor = Depends(get_current_actor),
    session: AsyncSession = Depends(get_db_session),
):
    filters = TransactionFilters(organization_id=organization_id, agent_id=agent_id, year=year, month=month)
    df = await ReportService(session).transactions_frame(filters, actor)
    return _export_dataframe(df, "transactions", format)


# PUBLIC_INTERFACE
@router.get(
    "/billing",
    summary="Billing report",
    description="Exports billing records with totals due and the overdue flag (platform admin only).",
    response_description="File stream (CSV/XLSX/PDF)",
)
async def billing_report(
    organization_id: Optional[UUID] = Query(None),
    status: Optional[str] = Query(None),
    due_from: Optional[date] = Query(None),
    due_to: Optional[date] = Query(None),
    as_of: Optional[date] = Query(None, description="Reference date for the overdue flag (default today)"),
    format: str = Query("csv", description="Export format: csv | xlsx | pdf"),
    actor: Actor = Depends(get_platform_admin),
    session: AsyncSession = Depends(get_db_session),
):
    df = await ReportService(session).billing_frame(
        actor, organization_id=organization_id, status=status, due_from=due_from, due_to=due_to, as_of=as_of
    )
    return _export_dataframe(df, "billing_records", format)
