"""Core rendering primitives for emojinator.

Modules:
- effects: effect catalog, waveforms and per-frame transform composition
- state: immutable style snapshot handed to every render call
- renderer: draws one frame of the sticker into a 128x128 surface
- clock: real-time preview driver
- sequence: fixed-timeline GIF encoder
"""
