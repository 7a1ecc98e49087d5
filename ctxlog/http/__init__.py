from .access_log import AccessLogMiddleware, Tier, classify_status, real_ip
