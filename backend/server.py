# server.py - Wrapper for the modular app structure
# Kept so process managers can keep pointing at `server:app`

from pecc.main import app

# Re-export app for uvicorn
__all__ = ['app']
