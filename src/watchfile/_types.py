"""Shared type definitions for watchfile."""

from typing import Literal

# Lifecycle of a per-connection watch loop
type WatchState = Literal["initializing", "watching", "terminated"]

# Why a significant change produced no payload
type SkipReason = Literal["read_failed", "empty", "render_failed"]

# Why a watch loop ended
type StopReason = Literal["peer_closed", "source_failed", "cancelled"]
