from brandforge.core.metrics import MetricsRegistry, normalize_path


def test_counter_series_and_exposition():
    registry = MetricsRegistry()
    settled = registry.counter("settled_total", "Settled actions", ["action_type"])
    settled.inc(labels={"action_type": "persona_creation"})
    settled.inc(labels={"action_type": "persona_creation"}, amount=2)

    assert settled.value({"action_type": "persona_creation"}) == 3.0
    assert settled.value({"action_type": "theme_creation"}) == 0.0
    assert registry.counter("settled_total", "ignored") is settled

    text = registry.export_prometheus()
    assert "# HELP settled_total Settled actions" in text
    assert 'settled_total{action_type="persona_creation"} 3.0' in text

    registry.reset()
    assert settled.value({"action_type": "persona_creation"}) == 0.0


def test_label_values_are_escaped():
    registry = MetricsRegistry()
    registry.counter("errors_total", "Errors", ["error"]).inc(labels={"error": 'bad "quote"'})
    assert 'error="bad \\"quote\\""' in registry.export_prometheus()


def test_normalize_path():
    assert normalize_path("/v1/credits/history") == "/v1/credits/history"
    assert normalize_path("/v1/personas/42") == "/v1/personas/:id"
    assert normalize_path("/v1/brands/3f2a9c1e-7b1d-4c55-9e0a-1d2b3c4d5e6f/") == "/v1/brands/:id"
