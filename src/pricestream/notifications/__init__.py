from pricestream.notifications.telegram import TelegramNotifier, format_alert_message

__all__ = ["TelegramNotifier", "format_alert_message"]
