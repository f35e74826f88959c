"""
Core download lifecycle engine.

The `DownloadManager` is the session coordinator. It owns the `TaskStore`
and delegates worker processes to the `ProcessSupervisor`, progress to the
`ProgressPoller` and state changes to the `LifecycleController`.
"""
