"""Watch Upload, watch folders that hand new files off for upload.

Keeps a registry of watched directories, each tied to a task
configuration, and sends every new file through a staging/upload pipeline.
"""

__version__ = "1.0.0"
__app_name__ = "Watch Upload"
