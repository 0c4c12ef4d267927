"""WhatsApp message templates.

Text templates are static strings with named placeholders; `render` refuses
parameters a template does not declare. Button menus are described by
`ButtonMenu` and turned into Meta payloads by the sender.
"""

from dataclasses import dataclass
from typing import Any

from vitalsbot.domain.readings import (
    BloodPressureReading,
    BloodSugarReading,
    Reading,
    ReadingKind,
)

TEMPLATES: dict[str, dict[str, Any]] = {
    "welcome": {
        "text": (
            "🙏🏼 *Welcome !!*\n\n"
            "_Please read below message:_\n\n"
            "🔐 *Privacy Disclaimer*\n"
            "Data is saved only on your Google Sheet.\n"
            "There is no server storage."
        ),
        "allowed_params": [],
    },
    "session_expired": {
        "text": "⚠️ Your session has expired. Please reconnect your Google Sheet.",
        "allowed_params": [],
    },
    "connect_first": {
        "text": "⚠️ Please connect your Google Sheet first before using this feature.",
        "allowed_params": [],
    },
    "save_failed": {
        "text": "❌ Failed to save data. Please try again.",
        "allowed_params": [],
    },
    "auth_started": {
        "text": "Please connect your Google account to continue.",
        "allowed_params": [],
    },
    "auth_failed": {
        "text": (
            "⚠️ Hmm… we couldn’t complete the connection.\n"
            "Please try connecting again to continue."
        ),
        "allowed_params": [],
    },
    "auth_finished": {
        "text": "✅ Account connected successfully!\nTap Start to continue.",
        "allowed_params": [],
    },
    "blood_sugar_saved": {
        "text": (
            "🩸 *Type:* {measurement_type}\n"
            "📊 *Value:* {value} mg/dL\n"
            "📅 *Date:* {date}\n"
            "⏰ *Time:* {time}"
        ),
        "allowed_params": ["measurement_type", "value", "date", "time"],
    },
    "blood_pressure_saved": {
        "text": (
            "🫀 *Blood Pressure:* {systolic}/{diastolic} mmHg\n"
            "📊 *Heart Rate:* {heart_rate}\n"
            "📅 *Date:* {date}\n"
            "⏰ *Time:* {time}"
        ),
        "allowed_params": ["systolic", "diastolic", "heart_rate", "date", "time"],
    },
}

CONNECT_DISPLAY_TEXT = "Continue"
RETRY_DISPLAY_TEXT = "Retry Connection"


def render(template_key: str, params: dict[str, Any] | None = None) -> str:
    """Render template with params. Validates allowed_params.

    Raises:
        ValueError: If template_key unknown or params contains disallowed keys.
    """
    params = params or {}
    if template_key not in TEMPLATES:
        raise ValueError(f"Unknown template: {template_key}")

    template = TEMPLATES[template_key]
    allowed = set(template["allowed_params"])
    extras = set(params.keys()) - allowed
    if extras:
        raise ValueError(f"Disallowed params for {template_key}: {extras}")

    return template["text"].format(**params)


@dataclass(frozen=True)
class ButtonMenu:
    """Interactive reply-button message. `buttons` are (reply id, title)."""

    header: str
    body: str
    footer: str
    buttons: tuple[tuple[str, str], ...]


_MAIN_MENU_BUTTONS = (
    (ReadingKind.BLOOD_PRESSURE.value, "🫀 Blood Pressure"),
    (ReadingKind.BLOOD_SUGAR.value, "🩸 Blood Sugar"),
)
_GO_BACK = ((ReadingKind.NONE.value, "Go Back"),)
_START_AGAIN = ((ReadingKind.NONE.value, "Start Again"),)

# Reply shown on the "finished" message after a successful connection
START_BUTTONS = ((ReadingKind.NONE.value, "Start"),)

STEP_ONE: dict[ReadingKind, ButtonMenu] = {
    ReadingKind.NONE: ButtonMenu(
        header="🩺 Health Check-In",
        body="Hi there! 👋\n\nWhat would you like to record today?",
        footer="*Please choose one option*",
        buttons=_MAIN_MENU_BUTTONS,
    ),
    ReadingKind.BLOOD_SUGAR: ButtonMenu(
        header="🩸 Blood Sugar Selected",
        body=(
            "Please reply in this format:\n"
            "• *Type:* Fasting (F) / Post-Meal (P)\n"
            "• *Value:* mg/dL"
        ),
        footer="✨ Example: *F 95*",
        buttons=_GO_BACK,
    ),
    ReadingKind.BLOOD_PRESSURE: ButtonMenu(
        header="🫀 Blood Pressure Selected",
        body=(
            "Please reply in this format:\n"
            "• *BP:* Systolic/Diastolic (mmHg)\n"
            "• *HR:* Beats per minute"
        ),
        footer="✨ Example: *120/80 72*",
        buttons=_GO_BACK,
    ),
}


def step_one(selection: str | ReadingKind) -> ButtonMenu:
    """Prompt for a category; unknown selections get the main menu."""
    try:
        kind = ReadingKind(selection)
    except ValueError:
        kind = ReadingKind.NONE
    return STEP_ONE[kind]


def step_two(reading: Reading) -> ButtonMenu:
    """Confirmation echoing the parsed values of a saved reading."""
    if isinstance(reading, BloodSugarReading):
        body = render(
            "blood_sugar_saved",
            {
                "measurement_type": reading.measurement_type.value,
                "value": reading.value,
                "date": reading.date,
                "time": reading.time,
            },
        )
    elif isinstance(reading, BloodPressureReading):
        body = render(
            "blood_pressure_saved",
            {
                "systolic": reading.systolic,
                "diastolic": reading.diastolic,
                "heart_rate": reading.heart_rate,
                "date": reading.date,
                "time": reading.time,
            },
        )
    else:
        raise ValueError(f"Unknown reading type: {type(reading).__name__}")

    return ButtonMenu(
        header="✅ Got it! Here's what I have received:",
        body=body,
        footer="*Your reading is saved successfully.*",
        buttons=_START_AGAIN,
    )
