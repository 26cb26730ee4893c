import logging
from typing import Optional

from linebot import SignatureValidator

logger = logging.getLogger(__name__)


def verify_signature(body: bytes, signature: Optional[str], channel_secret: str) -> bool:
    """x-line-signature（生ボディのHMAC-SHA256をbase64化したもの）を検証

    JSONとして解釈する前の受信バイト列そのものに対して行う。
    シークレット未設定・署名なしの場合は常に不一致とする。
    """
    if not channel_secret:
        logger.warning("LINE_CHANNEL_SECRET not set, rejecting webhook")
        return False
    if not signature:
        return False

    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError:
        logger.warning("Webhook body is not valid UTF-8")
        return False

    # SignatureValidator は compare_digest で比較する
    return SignatureValidator(channel_secret).validate(text, signature)
