import html
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from pydantic import BaseModel

from notification.jobs import NotificationRequest

PREVIEW_LENGTH = 100

DEFAULT_CONVERSATION_URL_TEMPLATE = (
    "https://app.gohighlevel.com/v2/location/{account_id}/conversations/{conversation_id}"
)


class NotificationPayload(BaseModel):
    """What every channel receives, whatever its wire format."""
    title: str
    body: str = ''
    contact_name: str = 'Unknown Contact'
    url: Optional[str] = None
    conversation_id: Optional[str] = None
    contact_id: Optional[str] = None
    is_priority: bool = False


def preview(text: Optional[str], length: int = PREVIEW_LENGTH) -> str:
    return (text or '')[:length]


class NotificationMessageBuilder:
    @staticmethod
    def conversation_url(
        account_id: str,
        conversation_id: Optional[str],
        template: str = DEFAULT_CONVERSATION_URL_TEMPLATE
    ) -> Optional[str]:
        if not conversation_id:
            return None
        return template.format(account_id=account_id, conversation_id=conversation_id)

    @staticmethod
    def title_for(request: NotificationRequest) -> str:
        if request.task_action:
            return f"Task {request.task_action}"
        return f"New message from {request.contact_name}"

    @staticmethod
    def build_payload(
        request: NotificationRequest,
        is_priority: bool,
        url_template: str = DEFAULT_CONVERSATION_URL_TEMPLATE
    ) -> NotificationPayload:
        return NotificationPayload(
            title=NotificationMessageBuilder.title_for(request),
            body=request.message_text or '',
            contact_name=request.contact_name,
            url=NotificationMessageBuilder.conversation_url(
                request.account_id, request.conversation_id, url_template
            ),
            conversation_id=request.conversation_id,
            contact_id=request.contact_id,
            is_priority=is_priority,
        )

    @staticmethod
    def build_push_message(payload: NotificationPayload, icon: str = '/icon.png', badge: str = '/badge.png') -> Dict[str, Any]:
        """Service-worker payload for a Web Push notification."""
        tag_suffix = payload.conversation_id or int(datetime.now(timezone.utc).timestamp() * 1000)
        return {
            'title': payload.title or 'New Message',
            'body': payload.body,
            'icon': icon,
            'badge': badge,
            'data': {
                'url': payload.url or '',
                'conversationId': payload.conversation_id,
                'contactId': payload.contact_id,
            },
            'tag': f"conversation-notification-{tag_suffix}",
            'requireInteraction': payload.is_priority,
        }

    @staticmethod
    def build_slack_message(payload: NotificationPayload, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Slack incoming-webhook payload using Block Kit."""
        now = now or datetime.now(timezone.utc)
        prefix = '🚨' if payload.is_priority else '🔔'
        title = f"{prefix} {payload.title or 'New Message'}"

        blocks = [
            {
                'type': 'header',
                'text': {'type': 'plain_text', 'text': title[:150], 'emoji': True},
            },
            {
                'type': 'section',
                'fields': [
                    {'type': 'mrkdwn', 'text': f"*From:*\n{payload.contact_name}"},
                    {'type': 'mrkdwn', 'text': f"*Time:*\n{now.strftime('%Y-%m-%d %H:%M UTC')}"},
                ],
            },
            {
                'type': 'section',
                'text': {'type': 'mrkdwn', 'text': f"*Message:*\n{payload.body[:2900]}"},
            },
        ]

        if payload.url:
            blocks.append({
                'type': 'actions',
                'elements': [{
                    'type': 'button',
                    'text': {'type': 'plain_text', 'text': 'View Conversation →', 'emoji': True},
                    'url': payload.url,
                    'style': 'primary',
                }],
            })

        return {'text': title, 'blocks': blocks}

    @staticmethod
    def build_email_subject(payload: NotificationPayload) -> str:
        prefix = '[Priority] ' if payload.is_priority else ''
        return f"{prefix}{payload.title}"

    @staticmethod
    def build_email_html(payload: NotificationPayload) -> str:
        safe_title = html.escape(payload.title)
        safe_contact = html.escape(payload.contact_name)
        safe_body = html.escape(payload.body).replace('\n', '<br>')

        html_body = f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; background: #f4f4f5; }}
        .card {{ background: white; padding: 20px; margin: 20px auto; max-width: 560px; border-radius: 8px; }}
        .priority {{ border-left: 4px solid #dc2626; }}
        .from {{ color: #666; font-size: 14px; }}
        .message {{ margin: 15px 0; padding: 12px; background: #f9f9f9; border-radius: 6px; }}
        .button {{ display: inline-block; padding: 10px 18px; background: #2563eb; color: white; text-decoration: none; border-radius: 6px; }}
    </style>
</head>
<body>
    <div class="card{' priority' if payload.is_priority else ''}">
        <h2>{safe_title}</h2>
        <div class="from">From: {safe_contact}</div>
        <div class="message">{safe_body}</div>
"""
        if payload.url:
            safe_url = html.escape(payload.url, quote=True)
            html_body += f'        <a class="button" href="{safe_url}">View Conversation</a>\n'

        html_body += """    </div>
</body>
</html>"""
        return html_body
