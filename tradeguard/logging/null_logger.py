from contextlib import contextmanager


class NullLogger:
    def debug(self, msg: str): pass
    def info(self, msg: str): pass
    def warning(self, msg: str): pass
    def error(self, msg: str): pass

    def with_context(self, **ctx):
        return self

    @contextmanager
    def time(self, label: str):
        yield
