from .appointment import appointment_bp
from .consultation import consultation_bp
from .notification import notification_bp
from .health import health_bp

__all__ = ['appointment_bp', 'consultation_bp', 'notification_bp', 'health_bp']
