"""
Константы для Bracelet Bot
Централизованное хранение всех констант приложения
"""

# Rate limiting
USER_REQUESTS_LIMIT = 30
USER_REQUESTS_WINDOW = 60  # seconds

# Шаги сценария
FINISHED_STEP = 0

# Валидация пользовательского ввода (границы не включаются, кроме витков
# и нижней границы бусины: мельче 1 мм бисера не бывает)
VALIDATION_LIMITS = {
    'wrist_cm': {'min': 0, 'max': 100},
    'wraps': {'min': 1, 'max': 10},
    'bead_mm': {'min': 1, 'max': 100},
    'magnet_mm': {'min': 0, 'max': 100},
    'tolerance_mm': {'min': 0, 'max': 100},
}
MAX_PATTERN_ITEMS = 20
PATTERN_SEPARATOR = ";"

# Безопасность
MAX_TEXT_LENGTH = 100
DB_OPERATION_TIMEOUT = 10.0  # seconds
DB_OPERATION_RETRIES = 3
DB_OPERATION_RETRY_DELAY = 0.5  # seconds

# Webhook
DEFAULT_MAX_BODY_SIZE = 1_048_576  # 1 MiB
SECRET_TOKEN_HEADER = "X-Telegram-Bot-Api-Secret-Token"

# Типы обновлений, которые бот принимает от Telegram
ALLOWED_UPDATES: tuple[str, ...] = ("message", "callback_query")
