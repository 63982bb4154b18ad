"""AI action orchestration: visualization protocol, chat sessions, bulk runs, automations and predictions."""
