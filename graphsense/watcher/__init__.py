from .change_watcher import ChangeWatcher

__all__ = ['ChangeWatcher']
