"""
Run the ThanküMail API with uvicorn. PORT defaults to 5000.
"""
import os

import uvicorn

from thankumail.core.config import settings


if __name__ == "__main__":
    uvicorn.run(
        "thankumail.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "5000")),
        log_level=settings.log_level.lower(),
        proxy_headers=True,
        forwarded_allow_ips="*",
    )
