"""Report generation for capture sessions: PDF, JSON, and plain text."""

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Dict, Optional

from core.config import GuidanceConfig
from core.utils import GuidanceResult, ZoomInfo

logger = logging.getLogger(__name__)


@dataclass
class SessionReport:
    """Everything exported about one capture session."""
    metrics: Dict
    config: GuidanceConfig
    source: str = ""
    last_result: Optional[GuidanceResult] = None
    zoom_info: Optional[ZoomInfo] = None
    performance: Optional[Dict] = None
    created_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_coordinator(cls, coordinator, source: str = "", zoom_info: Optional[ZoomInfo] = None):
        return cls(
            metrics=coordinator.metrics.snapshot(),
            config=coordinator.config,
            source=source,
            last_result=coordinator.latest_result,
            zoom_info=zoom_info,
            performance=coordinator.performance.stats() if coordinator.performance is not None else None,
        )


def _result_dict(result: Optional[GuidanceResult]) -> Optional[Dict]:
    if result is None:
        return None
    data = {
        "state": result.state.value,
        "message": result.message,
        "hint": result.hint,
        "can_capture": result.can_capture,
        "timestamp_ms": result.timestamp_ms,
        "failure_reasons": [r.value for r in result.failure_reasons],
        "distance_from_center": result.distance_from_center,
        "area_ratio": result.area_ratio,
        "centering_percentage": result.centering_percentage,
        "size_percentage": result.size_percentage,
        "processing_time_ms": result.processing_time_ms,
        "detection": None,
        "quality": asdict(result.metrics) if result.metrics is not None else None,
    }
    if result.detection is not None:
        d = result.detection
        data["detection"] = {
            "center": [d.center.x, d.center.y],
            "bounding_box": [d.bounding_box.x, d.bounding_box.y, d.bounding_box.width, d.bounding_box.height],
            "area": d.area,
            "confidence": d.confidence,
            "method": d.method,
        }
    return data


class ReportGenerator:
    """Generates exportable reports from capture sessions."""

    def generate_pdf(self, report: SessionReport, output_path: str) -> bool:
        """Generate a PDF report with session statistics and the final guidance state."""
        try:
            from reportlab.lib import colors
            from reportlab.lib.pagesizes import A4
            from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
            from reportlab.lib.units import mm
            from reportlab.platypus import (
                Paragraph,
                SimpleDocTemplate,
                Spacer,
                Table,
                TableStyle,
            )
            from i18n import t

            doc = SimpleDocTemplate(
                output_path,
                pagesize=A4,
                leftMargin=20 * mm,
                rightMargin=20 * mm,
                topMargin=20 * mm,
                bottomMargin=20 * mm,
            )

            styles = getSampleStyleSheet()
            elements = []

            title_style = ParagraphStyle(
                "ReportTitle",
                parent=styles["Title"],
                fontSize=20,
                spaceAfter=6,
            )
            elements.append(Paragraph(t("report.title"), title_style))
            elements.append(Spacer(1, 4 * mm))

            meta_style = ParagraphStyle("Meta", parent=styles["Normal"], fontSize=10, textColor=colors.grey)
            metrics = report.metrics
            elements.append(Paragraph(f"Source: {report.source or '-'}", meta_style))
            elements.append(Paragraph(f"Date: {report.created_at.strftime('%Y-%m-%d %H:%M:%S')}", meta_style))
            elements.append(Paragraph(
                f"Frames: {metrics.get('frames_processed', 0)} processed, "
                f"{metrics.get('frames_throttled', 0)} throttled, "
                f"{metrics.get('malformed_frames', 0)} malformed",
                meta_style,
            ))
            elements.append(Paragraph(
                f"Detection rate: {metrics.get('detection_rate', 0.0) * 100:.1f}%", meta_style
            ))
            elements.append(Spacer(1, 6 * mm))

            table_style = TableStyle([
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#0F766E")),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("FONTSIZE", (0, 0), (-1, 0), 10),
                ("FONTSIZE", (0, 1), (-1, -1), 9),
                ("ALIGN", (1, 0), (-1, -1), "CENTER"),
                ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#E5E7EB")),
                ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#F9FAFB")]),
                ("TOPPADDING", (0, 0), (-1, -1), 6),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
            ])

            # Guidance states
            elements.append(Paragraph("Guidance States", styles["Heading2"]))
            states = metrics.get("states", {})
            processed = metrics.get("frames_processed", 0)
            rows = [["State", "Frames", "Share"]]
            for state, count in states.items():
                share = f"{count / processed * 100:.1f}%" if processed else "-"
                rows.append([state.upper(), str(count), share])
            table = Table(rows, colWidths=[200, 80, 80])
            table.setStyle(table_style)
            elements.append(table)
            elements.append(Spacer(1, 6 * mm))

            # Stage timings
            elements.append(Paragraph("Average Stage Timing", styles["Heading2"]))
            rows = [["Stage", "Milliseconds"]]
            for stage, ms in metrics.get("average_stage_ms", {}).items():
                rows.append([stage.capitalize(), f"{ms:.2f}"])
            table = Table(rows, colWidths=[200, 160])
            table.setStyle(table_style)
            elements.append(table)
            elements.append(Spacer(1, 6 * mm))

            # Final state
            result = report.last_result
            if result is not None:
                elements.append(Paragraph("Last Guidance Result", styles["Heading2"]))
                elements.append(Paragraph(f"<b>{result.state.value.upper()}</b>: {result.message}", styles["Normal"]))
                if result.hint:
                    elements.append(Paragraph(result.hint, meta_style))
                if result.metrics is not None:
                    q = result.metrics
                    elements.append(Paragraph(
                        f"Sharpness {q.sharpness:.2f} | Brightness {q.brightness:.0f} | "
                        f"Contrast {q.contrast:.2f}",
                        meta_style,
                    ))
                elements.append(Spacer(1, 6 * mm))

            if report.zoom_info is not None:
                z = report.zoom_info
                elements.append(Paragraph(
                    f"Zoom: {z.current_level:.1f}x (range {z.min_level:.1f}-{z.max_level:.1f}x, "
                    f"stabilization {'on' if z.is_stabilization_active else 'off'})",
                    meta_style,
                ))

            elements.append(Spacer(1, 10 * mm))
            disclaimer_style = ParagraphStyle(
                "Disclaimer",
                parent=styles["Normal"],
                fontSize=8,
                textColor=colors.HexColor("#6B7280"),
                spaceBefore=8,
            )
            elements.append(Paragraph(t("report.disclaimer"), disclaimer_style))

            doc.build(elements)
            return True

        except Exception:
            logger.exception("Failed to write PDF report to %s", output_path)
            return False

    def generate_json(self, report: SessionReport, output_path: str) -> bool:
        """Generate a JSON export of the session."""
        try:
            from i18n import t

            data = {
                "tool": "MoleGuide",
                "version": "1.0.0",
                "timestamp": report.created_at.isoformat(),
                "disclaimer": t("report.disclaimer"),
                "source": report.source,
                "config": report.config.to_dict(),
                "metrics": report.metrics,
                "last_result": _result_dict(report.last_result),
                "zoom": asdict(report.zoom_info) if report.zoom_info is not None else None,
                "performance": report.performance,
            }

            with open(output_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            return True

        except Exception:
            logger.exception("Failed to write JSON report to %s", output_path)
            return False

    def generate_txt(self, report: SessionReport, output_path: str) -> bool:
        """Generate a plain text report."""
        try:
            from i18n import t

            metrics = report.metrics
            processed = metrics.get("frames_processed", 0)
            lines = [
                "=" * 60,
                "MOLEGUIDE CAPTURE SESSION REPORT",
                "=" * 60,
                "",
                f"Source: {report.source or '-'}",
                f"Date: {report.created_at.strftime('%Y-%m-%d %H:%M:%S')}",
                f"Frames offered: {metrics.get('frames_offered', 0)}",
                f"Frames processed: {processed}",
                f"Frames throttled: {metrics.get('frames_throttled', 0)}",
                f"Malformed frames: {metrics.get('malformed_frames', 0)}",
                f"Pipeline failures: {metrics.get('pipeline_failures', 0)}",
                f"Detection rate: {metrics.get('detection_rate', 0.0) * 100:.1f}%",
                "",
                "-" * 40,
                "GUIDANCE STATES",
                "-" * 40,
            ]

            for state, count in metrics.get("states", {}).items():
                share = f" ({count / processed * 100:.1f}%)" if processed else ""
                lines.append(f"  {state.upper()}: {count}{share}")
            lines.append("")

            lines.extend(["-" * 40, "AVERAGE STAGE TIMING", "-" * 40])
            for stage, ms in metrics.get("average_stage_ms", {}).items():
                lines.append(f"  {stage}: {ms:.2f} ms")
            lines.append("")

            result = report.last_result
            if result is not None:
                lines.extend(["-" * 40, "LAST RESULT", "-" * 40])
                lines.append(f"  {result.state.value.upper()}: {result.message}")
                if result.hint:
                    lines.append(f"    {result.hint}")
                lines.append(f"  Can capture: {'yes' if result.can_capture else 'no'}")
                lines.append("")

            if report.zoom_info is not None:
                lines.append(f"Zoom: {report.zoom_info.current_level:.1f}x")
                lines.append("")

            if report.performance is not None:
                lines.append(
                    f"Performance level: {report.performance['level'].upper()} "
                    f"(avg {report.performance['average_processing_ms']:.1f} ms)"
                )
                lines.append("")

            lines.extend([
                "-" * 40,
                "DISCLAIMER",
                "-" * 40,
                t("report.disclaimer"),
            ])

            with open(output_path, "w", encoding="utf-8") as f:
                f.write("\n".join(lines))
            return True

        except Exception:
            logger.exception("Failed to write text report to %s", output_path)
            return False
