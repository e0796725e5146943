def test_metrics_route_reports_engine_gauges(client, services):
    services.batch_processor.add(7)
    services.batch_processor.add(8)

    response = client.get("/metrics")

    assert response.status_code == 200
    assert "qc_realtime_batch_queue_size 2.0" in response.text
    assert "qc_realtime_typing_indicators 0.0" in response.text
    assert "qc_realtime_socket_users 0.0" in response.text


def test_metrics_route_is_hidden_from_schema(client):
    assert "/metrics" not in client.get("/openapi.json").json()["paths"]
