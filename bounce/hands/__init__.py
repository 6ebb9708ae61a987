"""HANDS — Audio layer.

Modules:
  processor: AudioBuffer and pure post-processing transforms
  wav: RIFF/WAVE encoder
  synth: oscillators, envelopes, patch presets
  engine: deterministic offline render engine
"""
