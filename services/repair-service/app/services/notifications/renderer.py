"""
Pure rendering of notification payloads into LINE message objects.

Each payload variant has a dedicated function returning a RenderedMessage: the LINE
message document plus the title/message summary written to the notification log.
Nothing here touches the database or the network.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple
from pydantic import BaseModel
from app.models.enums import AssignmentAction
from app.schemas.notification import (
    AssignmentPayload,
    GenericPayload,
    NewTicketPayload,
    NotificationPayload,
    StatusUpdatePayload,
)

COLORS = {
    "CRITICAL": "#D32F2F",
    "URGENT": "#F57C00",
    "NORMAL": "#2E7D32",
    "SUCCESS": "#2ECC71",
    "INFO": "#3498DB",
    "WARNING": "#F39C12",
    "SECONDARY": "#95A5A6",
    "PRIMARY": "#34495E",
}

URGENCY_CONFIG = {
    "CRITICAL": {"color": COLORS["CRITICAL"], "text": "ด่วนที่สุด"},
    "URGENT": {"color": COLORS["URGENT"], "text": "ด่วน"},
    "NORMAL": {"color": COLORS["NORMAL"], "text": "ปกติ"},
}

STATUS_CONFIG = {
    "PENDING": {"color": COLORS["WARNING"], "text": "รอดำเนินการ"},
    "IN_PROGRESS": {"color": COLORS["INFO"], "text": "กำลังดำเนินการ"},
    "WAITING_PARTS": {"color": COLORS["WARNING"], "text": "รออะไหล่"},
    "COMPLETED": {"color": COLORS["SUCCESS"], "text": "เสร็จสิ้น"},
    "CANCELLED": {"color": COLORS["SECONDARY"], "text": "ยกเลิก"},
}

ASSIGNMENT_HEADLINES = {
    AssignmentAction.ASSIGNED: "คุณได้รับมอบหมายงานใหม่",
    AssignmentAction.TRANSFERRED: "มีงานโอนมาให้คุณ",
    AssignmentAction.CLAIMED: "คุณรับงานนี้แล้ว",
}

# Notification timestamps are shown in Bangkok time (UTC+7, no DST).
DISPLAY_TZ = timezone(timedelta(hours=7))


class RenderLinks(BaseModel):
    frontend_url: str
    liff_id: Optional[str] = None

    def admin_claim_url(self, ticket_code: str) -> str:
        return f"{self.frontend_url.rstrip('/')}/admin/repairs?id={ticket_code}"

    def staff_detail_url(self, ticket_code: str) -> str:
        return f"{self.frontend_url.rstrip('/')}/it/repairs?id={ticket_code}"

    def liff_url(self, ticket_code: str) -> Optional[str]:
        if not self.liff_id:
            return None
        return f"https://liff.line.me/{self.liff_id}?id={ticket_code}"


class RenderedMessage(BaseModel):
    category: str
    title: str
    message: str
    document: Dict[str, Any]


def urgency_config(level) -> Dict[str, str]:
    return URGENCY_CONFIG.get(getattr(level, "value", level), URGENCY_CONFIG["NORMAL"])


def status_config(status: str) -> Dict[str, str]:
    return STATUS_CONFIG.get(status, {"color": COLORS["PRIMARY"], "text": status})


def new_ticket_summary(payload: NewTicketPayload) -> Tuple[str, str]:
    return f"งานใหม่ {payload.ticket_code}", payload.problem_title


def assignment_summary(payload: AssignmentPayload) -> Tuple[str, str]:
    return f"{ASSIGNMENT_HEADLINES[payload.action]} {payload.ticket_code}", payload.problem_title


def status_update_summary(payload: StatusUpdatePayload) -> Tuple[str, str]:
    return f"อัปเดตงาน {payload.ticket_code}", payload.remark or payload.status


def generic_summary(payload: GenericPayload) -> Tuple[str, str]:
    return payload.title, payload.message


def format_timestamp(value: Optional[datetime]) -> str:
    value = value or datetime.utcnow()
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(DISPLAY_TZ).strftime("%d/%m/%Y %H:%M")


def _flex_row(label: str, value: Optional[str], bold: bool = False) -> Dict[str, Any]:
    return {
        "type": "box",
        "layout": "baseline",
        "contents": [
            {"type": "text", "text": label, "size": "sm", "color": "#AAAAAA", "flex": 2},
            {
                "type": "text",
                "text": value or "-",
                "size": "sm",
                "wrap": True,
                "flex": 5,
                "weight": "bold" if bold else "regular",
            },
        ],
    }


def _uri_button(label: str, uri: str, color: str) -> Dict[str, Any]:
    return {
        "type": "button",
        "style": "primary",
        "color": color,
        "action": {"type": "uri", "label": label, "uri": uri},
    }


def _flex(alt_text: str, bubble: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "flex", "altText": alt_text, "contents": bubble}


def render_new_ticket(payload: NewTicketPayload, links: RenderLinks) -> RenderedMessage:
    urgency = urgency_config(payload.urgency)
    bubble = {
        "type": "bubble",
        "size": "mega",
        "header": {
            "type": "box",
            "layout": "vertical",
            "backgroundColor": urgency["color"],
            "contents": [
                {"type": "text", "text": "แจ้งซ่อมใหม่", "color": "#FFFFFF", "weight": "bold"},
                {"type": "text", "text": urgency["text"], "color": "#FFFFFF", "size": "xs"},
            ],
        },
        "body": {
            "type": "box",
            "layout": "vertical",
            "spacing": "md",
            "contents": [
                {"type": "text", "text": payload.ticket_code, "weight": "bold", "size": "xl", "align": "center"},
                {"type": "separator"},
                _flex_row("ผู้แจ้ง", payload.reporter_name),
                _flex_row("แผนก", payload.department),
                _flex_row("สถานที่", payload.location),
                _flex_row("ปัญหา", payload.problem_title, bold=True),
            ],
        },
        "footer": {
            "type": "box",
            "layout": "vertical",
            "contents": [_uri_button("รับงานซ่อม", links.admin_claim_url(payload.ticket_code), urgency["color"])],
        },
    }
    title, message = new_ticket_summary(payload)
    return RenderedMessage(
        category=payload.category,
        title=title,
        message=message,
        document=_flex(f"📢 งานซ่อมใหม่ {payload.ticket_code}", bubble),
    )


def render_assignment(payload: AssignmentPayload, links: RenderLinks) -> RenderedMessage:
    urgency = urgency_config(payload.urgency)
    headline = ASSIGNMENT_HEADLINES[payload.action]
    bubble = {
        "type": "bubble",
        "size": "mega",
        "header": {
            "type": "box",
            "layout": "vertical",
            "backgroundColor": COLORS["PRIMARY"],
            "contents": [
                {"type": "text", "text": headline, "color": "#FFFFFF", "weight": "bold"},
                {"type": "text", "text": payload.ticket_code, "color": "#FFFFFF", "size": "sm"},
            ],
        },
        "body": {
            "type": "box",
            "layout": "vertical",
            "spacing": "md",
            "contents": [
                _flex_row("ปัญหา", payload.problem_title, bold=True),
                _flex_row("ผู้แจ้ง", payload.reporter_name),
                {
                    "type": "box",
                    "layout": "baseline",
                    "contents": [
                        {"type": "text", "text": "ความเร่งด่วน", "size": "sm", "color": "#AAAAAA", "flex": 2},
                        {"type": "text", "text": urgency["text"], "size": "sm", "color": urgency["color"], "weight": "bold", "flex": 5},
                    ],
                },
            ],
        },
        "footer": {
            "type": "box",
            "layout": "vertical",
            "contents": [_uri_button("ดูรายละเอียด", links.staff_detail_url(payload.ticket_code), COLORS["PRIMARY"])],
        },
    }
    title, message = assignment_summary(payload)
    return RenderedMessage(
        category=payload.category,
        title=title,
        message=message,
        document=_flex(f"🔧 {headline} {payload.ticket_code}", bubble),
    )


def render_status_update(payload: StatusUpdatePayload, links: RenderLinks) -> RenderedMessage:
    config = status_config(payload.status)

    header_contents = [
        {"type": "text", "text": "อัปเดตสถานะงาน", "color": "#FFFFFF", "weight": "bold", "size": "md"},
        {"type": "text", "text": payload.ticket_code, "color": "#FFFFFF", "size": "sm", "margin": "xs"},
    ]
    if payload.problem_title:
        header_contents.append(
            {"type": "text", "text": payload.problem_title, "color": "#FFFFFF", "size": "xs", "wrap": True}
        )

    body = [
        {
            "type": "box",
            "layout": "vertical",
            "backgroundColor": config["color"] + "15",
            "cornerRadius": "12px",
            "paddingAll": "16px",
            "contents": [
                {"type": "text", "text": config["text"], "weight": "bold", "size": "xl", "color": config["color"], "align": "center"},
            ],
        }
    ]
    if payload.technician_name:
        body.append(_section("เจ้าหน้าที่รับผิดชอบ", payload.technician_name, bold=True))
    if payload.remark:
        body.append(_section("หมายเหตุจากเจ้าหน้าที่", payload.remark))
    if payload.next_step:
        body.append(_section("ขั้นตอนถัดไป", payload.next_step, background="#FFF3E0", label_color="#E65100"))
    body.append(
        {"type": "text", "text": format_timestamp(payload.updated_at), "size": "xs", "color": "#999999", "align": "end", "margin": "md"}
    )

    bubble = {
        "type": "bubble",
        "size": "mega",
        "styles": {"header": {"backgroundColor": config["color"]}, "body": {"backgroundColor": "#FAFAFA"}},
        "header": {"type": "box", "layout": "vertical", "paddingAll": "16px", "contents": header_contents},
        "body": {"type": "box", "layout": "vertical", "spacing": "lg", "paddingAll": "20px", "contents": body},
    }
    liff_url = links.liff_url(payload.ticket_code)
    if liff_url:
        bubble["footer"] = {
            "type": "box",
            "layout": "vertical",
            "contents": [_uri_button("ติดตามงาน", liff_url, config["color"])],
        }

    title, message = status_update_summary(payload)
    return RenderedMessage(
        category=payload.category,
        title=title,
        message=message,
        document=_flex(f"🔄 อัปเดตสถานะ {payload.ticket_code}", bubble),
    )


def _section(label: str, value: str, bold: bool = False, background: str = "#FFFFFF", label_color: str = "#888888") -> Dict[str, Any]:
    return {
        "type": "box",
        "layout": "vertical",
        "backgroundColor": background,
        "cornerRadius": "8px",
        "paddingAll": "12px",
        "contents": [
            {"type": "text", "text": label, "size": "xs", "color": label_color},
            {
                "type": "text",
                "text": value,
                "size": "sm",
                "color": "#333333",
                "wrap": True,
                "weight": "bold" if bold else "regular",
            },
        ],
    }


def render_generic(payload: GenericPayload, links: RenderLinks = None) -> RenderedMessage:
    title, message = generic_summary(payload)
    return RenderedMessage(
        category=payload.category,
        title=title,
        message=message,
        document=text_message(payload.title, payload.message, payload.action_url),
    )


def text_message(title: str, message: str, action_url: Optional[str] = None) -> Dict[str, Any]:
    text = f"📬 {title}\n\n{message}"
    if action_url:
        text += f"\n\n👉 {action_url}"
    return {"type": "text", "text": text}


RENDERERS = {
    NewTicketPayload: render_new_ticket,
    AssignmentPayload: render_assignment,
    StatusUpdatePayload: render_status_update,
    GenericPayload: render_generic,
}


SUMMARIES = {
    NewTicketPayload: new_ticket_summary,
    AssignmentPayload: assignment_summary,
    StatusUpdatePayload: status_update_summary,
    GenericPayload: generic_summary,
}


def render(payload: NotificationPayload, links: RenderLinks) -> RenderedMessage:
    return RENDERERS[type(payload)](payload, links)


def summarize(payload: NotificationPayload) -> RenderedMessage:
    """Log summary without a LINE document, for payloads that could not be rendered."""
    title, message = SUMMARIES[type(payload)](payload)
    return RenderedMessage(category=payload.category, title=title, message=message, document={})
