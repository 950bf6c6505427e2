"""
                Restaurant WhatsApp Attendance

Multi-tenant WhatsApp Web sessions with an AI auto-responder and human
hand-off, with a hybrid Mock/Real backend architecture.

Author: Khalil Bannouri
Version: 4.0.0
"""

__version__ = "4.0.0"
__author__ = "Khalil Bannouri"
