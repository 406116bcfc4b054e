from .manager import ContextManager, ContextProxy, db
