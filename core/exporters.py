"""
Spreadsheet report for an analysis result.
One sheet lists the detected subscriptions, a second one summarizes totals
and insights.
"""
from datetime import datetime
from pathlib import Path
from typing import Optional

import pandas as pd

from core.aggregator import monthly_equivalent
from core.config import get_settings
from core.exceptions import ExportError
from core.logger import setup_logger
from core.schema import SHEET_NAMES, AnalysisResult

logger = setup_logger(__name__)

ITEM_COLUMNS = [
    "Serviço",
    "Categoria",
    "Valor",
    "Frequência",
    "Custo mensal",
    "Confiança",
    "Recomendação",
]

FREQUENCY_LABELS = {
    "monthly": "Mensal",
    "yearly": "Anual",
}


def build_items_frame(result: AnalysisResult) -> pd.DataFrame:
    """
    Tabulate subscription items.

    Args:
        result: Analysis result

    Returns:
        DataFrame with one row per item
    """
    rows = [
        {
            "Serviço": item.name,
            "Categoria": item.category,
            "Valor": item.amount,
            "Frequência": FREQUENCY_LABELS.get(item.frequency, item.frequency),
            "Custo mensal": round(monthly_equivalent(item), 2),
            "Confiança": f"{round(max(0, min(1, item.confidence)) * 100)}%",
            "Recomendação": item.recommendation or "",
        }
        for item in result.items
    ]
    return pd.DataFrame(rows, columns=ITEM_COLUMNS)


def build_summary_frame(result: AnalysisResult) -> pd.DataFrame:
    """Totals, count, per-category sums and insights as label/value rows."""
    rows = [
        ("Total mensal", result.total_monthly),
        ("Total anual", result.total_yearly),
        ("Assinaturas", result.subscription_count),
    ]
    rows.extend((f"Categoria: {c.category}", c.amount) for c in result.category_breakdown)
    rows.extend(("Insight", insight) for insight in result.insights)
    return pd.DataFrame(rows, columns=["Item", "Valor"])


def export_to_excel(result: AnalysisResult, output_path: str) -> str:
    """
    Write the report workbook.

    Args:
        result: Analysis result to export
        output_path: Output file path

    Returns:
        Path to created file

    Raises:
        ExportError: If the workbook cannot be written
    """
    logger.info(f"Exporting {result.subscription_count} subscriptions to {output_path}")

    items_df = build_items_frame(result)
    summary_df = build_summary_frame(result)

    output_file = Path(output_path)
    output_file.parent.mkdir(parents=True, exist_ok=True)

    try:
        with pd.ExcelWriter(output_path, engine="xlsxwriter") as writer:
            items_df.to_excel(writer, sheet_name=SHEET_NAMES["items"], index=False)
            summary_df.to_excel(writer, sheet_name=SHEET_NAMES["summary"], index=False)

            workbook = writer.book
            money_format = workbook.add_format({"num_format": "#,##0.00"})
            wrap_format = workbook.add_format({"text_wrap": True, "valign": "top"})

            items_sheet = writer.sheets[SHEET_NAMES["items"]]
            for idx, col in enumerate(items_df.columns):
                values_len = items_df[col].astype(str).map(len).max() if len(items_df) else 0
                width = min(max(values_len, len(col)) + 2, 50)
                if col in ("Valor", "Custo mensal"):
                    items_sheet.set_column(idx, idx, width, money_format)
                elif col == "Recomendação":
                    items_sheet.set_column(idx, idx, 60, wrap_format)
                else:
                    items_sheet.set_column(idx, idx, width)

            summary_sheet = writer.sheets[SHEET_NAMES["summary"]]
            summary_sheet.set_column(0, 0, 30)
            summary_sheet.set_column(1, 1, 80, wrap_format)

        logger.info(f"Successfully exported to {output_path}")
        return output_path

    except Exception as e:
        logger.error(f"Failed to export Excel: {e}")
        raise ExportError(
            "Failed to export to Excel",
            details={"output_path": output_path, "error": str(e)}
        )


def create_output_filename(record_id: str, base_path: Optional[str] = None) -> str:
    """
    Create timestamped output filename.

    Args:
        record_id: History record id
        base_path: Base directory path (defaults to configured temp storage)

    Returns:
        Full output file path
    """
    if base_path is None:
        base_path = get_settings().temp_storage_path

    Path(base_path).mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
    filename = f"quantoda_report_{record_id[:8]}_{timestamp}.xlsx"

    return str(Path(base_path) / filename)
