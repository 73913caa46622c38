from .login_attempt import LoginAttempt
from .user_device import UserDevice
from .risk_threshold import RiskThreshold
