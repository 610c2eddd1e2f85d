"""URL configuration.

The HTTP surface is provided by a separate service; the storage core
exposes no routes of its own.
"""

urlpatterns: list[object] = []
