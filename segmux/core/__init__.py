"""
Core application engine for turning a download job into one muxed file.

The `DownloadManager` coordinates a job, delegating each track to the
`TrackProcessor`, which fetches segments through the `SegmentScheduler`.
Downloaded audio tracks are aligned by the `AudioSynchronizer` before the
mux plan is handed to ffmpeg.
"""
