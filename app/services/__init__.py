"""
                        Services Module

Contains all business logic services with the hybrid architecture pattern.
Each external service has Mock (development) and Real (production) implementations.

Services:
    - whatsapp: WhatsApp Web automation (mock / whatsapp-web.js bridge)
    - generation: Reply generation (mock / Google Gemini)
    - attendance: Sessions, chat escalations and the auto-responder
"""

from app.services.attendance import Attendance, build_attendance

__all__ = ["Attendance", "build_attendance"]
