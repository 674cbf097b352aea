"""Exceptions raised during setup. Each one is fatal to a kubetail run."""


class KubetailError(Exception):
    pass


class ConfigError(KubetailError):
    pass


class FilterError(KubetailError):
    """A --grep/--vgrep pattern failed to compile."""


class ClusterConfigError(KubetailError):
    """Cluster credentials could not be loaded."""


class InventoryError(KubetailError):
    pass


class StreamOpenError(KubetailError):
    def __init__(self, target_name: str, reason: str):
        super().__init__(f"cannot open log stream for {target_name}: {reason}")
        self.target_name = target_name
