#!/usr/bin/env python3
"""
Run script for the CallCoach backend

Starts uvicorn from the import string so ``DEBUG=true`` can enable reload.
"""
import uvicorn

from callcoach.config.settings import settings

if __name__ == "__main__":
    uvicorn.run(
        "callcoach.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
