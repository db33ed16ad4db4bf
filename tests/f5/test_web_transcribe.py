"""Tests for the transcription endpoint (F5)."""

import base64

from speaking.llm.client import LLMError


def data_url(payload: bytes = b"fake-audio", content_type: str = "audio/webm") -> str:
    return f"data:{content_type};base64," + base64.b64encode(payload).decode()


class TestMultipartUpload:
    """Tests for POST /api/transcribe with a file upload."""

    def test_transcribes_file(self, client, mock_llm_client):
        response = client.post(
            "/api/transcribe",
            files={"file": ("answer.webm", b"fake-audio", "audio/webm")},
        )

        assert response.status_code == 200
        assert response.json() == {"text": "I grew up in a small town by the sea."}
        args, kwargs = mock_llm_client.transcribe.call_args
        assert args[0] == b"fake-audio"
        assert kwargs["filename"] == "answer.webm"
        assert kwargs["content_type"] == "audio/webm"

    def test_codec_parameters_stripped(self, client, mock_llm_client):
        client.post(
            "/api/transcribe",
            files={"file": ("answer.webm", b"fake-audio", "audio/webm;codecs=opus")},
        )
        assert mock_llm_client.transcribe.call_args.kwargs["content_type"] == "audio/webm"

    def test_no_file(self, client):
        response = client.post("/api/transcribe", files={"other": ("x.txt", b"x", "text/plain")})
        assert response.status_code == 400
        assert response.json()["detail"] == "No file provided"

    def test_empty_file(self, client):
        response = client.post(
            "/api/transcribe", files={"file": ("answer.webm", b"", "audio/webm")}
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Empty file provided"

    def test_transcription_failure(self, client, mock_llm_client):
        mock_llm_client.transcribe.side_effect = LLMError("Transcription call failed")
        response = client.post(
            "/api/transcribe", files={"file": ("answer.webm", b"fake-audio", "audio/webm")}
        )
        assert response.status_code == 500
        assert response.json()["detail"].startswith("Failed to transcribe audio")


class TestJsonBody:
    """Tests for POST /api/transcribe with a JSON body."""

    def test_data_url(self, client, mock_llm_client):
        response = client.post(
            "/api/transcribe",
            json={"audioUrl": data_url(content_type="audio/mp4"), "isDataUrl": True},
        )

        assert response.status_code == 200
        assert response.json()["text"] == "I grew up in a small town by the sea."
        args, kwargs = mock_llm_client.transcribe.call_args
        assert args[0] == b"fake-audio"
        assert kwargs["content_type"] == "audio/mp4"

    def test_data_url_detected_without_flag(self, client):
        response = client.post("/api/transcribe", json={"audioUrl": data_url()})
        assert response.status_code == 200

    def test_invalid_data_url(self, client):
        response = client.post(
            "/api/transcribe", json={"audioUrl": "data:audio/webm;base64", "isDataUrl": True}
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid data URL format"

    def test_unsupported_url(self, client):
        response = client.post("/api/transcribe", json={"audioUrl": "ftp://example.com/a.webm"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Unsupported audio URL format"

    def test_missing_url(self, client):
        response = client.post("/api/transcribe", json={"questionId": "q1"})
        assert response.status_code == 400
        assert response.json()["detail"] == "No audio URL provided"

    def test_data_url_transcription_failure(self, client, mock_llm_client):
        mock_llm_client.transcribe.side_effect = LLMError("Transcription call failed")
        response = client.post("/api/transcribe", json={"audioUrl": data_url()})
        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to transcribe data URL"


class TestContentType:
    def test_unsupported_content_type(self, client):
        response = client.post(
            "/api/transcribe", content=b"raw", headers={"Content-Type": "text/plain"}
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Unsupported content type: text/plain"
