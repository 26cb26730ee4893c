#!/usr/bin/env python3
"""
スタッフBot起動スクリプト
"""
import uvicorn
import os

if __name__ == "__main__":
    # Railwayの環境変数に対応
    port = int(os.getenv("PORT", 8000))
    host = os.getenv("HOST", "0.0.0.0")

    print(f"👥 スタッフBotを起動中...")
    print(f"📍 ホスト: {host}")
    print(f"🔌 ポート: {port}")
    print(f"🌐 Webhook URL: https://<your-domain>/line/webhook")

    uvicorn.run(
        "staff_bot.main:create_app",
        factory=True,
        host=host,
        port=port
    )
