"""
Built-in status email content. Used when no EmailTemplate row exists for a key,
and as the seed for scripts/init_db.py.
"""
from __future__ import annotations

DEFAULT_TEMPLATES: dict[str, dict[str, str]] = {
    "approved": {
        "subject": "Welcome to the Accountability Circle! 🎉",
        "description": "Sent when an application is approved.",
        "html_content": (
            "<h1>Congratulations, {{name}}!</h1>"
            "<p>We're delighted to let you know that your application to join the "
            "Accountability Circle has been approved.</p>"
            "<p>You can now create your account using the same email address you applied with.</p>"
            '<p><a href="https://accountabilitycircle.co.uk/auth/signup">Create your account</a></p>'
            "<p>We can't wait to see you grow.</p>"
            "<p>The Accountability Circle team</p>"
        ),
    },
    "rejected": {
        "subject": "Update on Your Accountability Circle Application",
        "description": "Sent when an application is not successful.",
        "html_content": (
            "<p>Hi {{name}},</p>"
            "<p>Thank you for taking the time to apply to the Accountability Circle.</p>"
            "<p>After careful consideration we are unable to offer you a place at this time. "
            "This isn't a reflection of your potential, and you're welcome to apply again in future.</p>"
            "<p>Wishing you every success,<br>The Accountability Circle team</p>"
        ),
    },
    "pending": {
        "subject": "Your Application Is Under Review",
        "description": "Sent when an application is moved back to pending review.",
        "html_content": (
            "<p>Hi {{name}},</p>"
            "<p>Your application to the Accountability Circle is currently under review.</p>"
            "<p>We aim to get back to you within 3-5 working days.</p>"
            "<p>The Accountability Circle team</p>"
        ),
    },
}
