from whatsnew.api.main import app

__all__ = ["app"]
