"""Pacote config: símbolos monitorados e configurações de runtime."""
