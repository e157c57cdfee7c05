from .auto_delete import run_token_purge, start_cleanup_job

__all__ = ['run_token_purge', 'start_cleanup_job']
