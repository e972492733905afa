"""Tests for the ONNX model manager."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock, call, patch

import pytest

from classiview.config import Settings
from classiview.errors import LoadError
from classiview.ml.model_manager import ModelMetadata, OnnxModelManager

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

TM_METADATA = {
    "tfjsVersion": "1.3.1",
    "tmVersion": "2.4.7",
    "packageVersion": "0.8.4-alpha2",
    "packageName": "@teachablemachine/image",
    "timeStamp": "2024-03-01T10:00:00.000Z",
    "userMetadata": {},
    "modelName": "tm-my-image-model",
    "labels": ["cat", "dog", "fox"],
    "imageSize": 224,
}


def _make_settings(**overrides: object) -> Settings:
    defaults: dict[str, object] = {
        "device": "cpu",
        "models_dir": "/tmp/classiview_test_models",
        "model_repo_id": None,
        "intra_op_threads": 0,
        "inter_op_threads": 1,
        "max_concurrent": 2,
    }
    defaults.update(overrides)
    return Settings(**defaults)  # type: ignore[arg-type]


def _write_model_dir(path: Path, metadata: object = TM_METADATA) -> None:
    (path / "model.onnx").write_bytes(b"onnx")
    (path / "metadata.json").write_text(json.dumps(metadata), encoding="utf-8")


# ---------------------------------------------------------------------------
# Metadata tests
# ---------------------------------------------------------------------------


class TestModelMetadata:
    def test_parses_teachable_machine_metadata(self) -> None:
        metadata = ModelMetadata.model_validate(TM_METADATA)
        assert metadata.labels == ["cat", "dog", "fox"]
        assert metadata.image_size == 224
        assert metadata.model_name == "tm-my-image-model"

    def test_image_size_defaults_to_224(self) -> None:
        metadata = ModelMetadata.model_validate({"labels": ["a"]})
        assert metadata.image_size == 224
        assert metadata.model_name is None

    @pytest.mark.parametrize(
        "payload",
        [
            {"labels": []},
            {"labels": ["a", "a"]},
            {"labels": ["a", ""]},
            {"imageSize": 224},
        ],
    )
    def test_invalid_metadata_rejected(self, payload: dict[str, object]) -> None:
        with pytest.raises(ValueError):
            ModelMetadata.model_validate(payload)


# ---------------------------------------------------------------------------
# OnnxModelManager tests
# ---------------------------------------------------------------------------


class TestOnnxModelManager:
    @patch("classiview.ml.model_manager.hf_hub_download")
    def test_ensure_downloaded_calls_hf_hub_download(self, mock_download: MagicMock, tmp_path: Path) -> None:
        mock_download.side_effect = lambda **kwargs: f"{tmp_path}/{kwargs['filename']}"
        settings = _make_settings(models_dir=str(tmp_path), model_repo_id="someone/pets", model_revision="v2")
        mgr = OnnxModelManager(settings)

        files = mgr.ensure_downloaded()

        assert mock_download.call_args_list == [
            call(repo_id="someone/pets", filename="model.onnx", revision="v2", local_dir=str(tmp_path)),
            call(repo_id="someone/pets", filename="metadata.json", revision="v2", local_dir=str(tmp_path)),
        ]
        assert files.model_path == tmp_path / "model.onnx"
        assert files.metadata_path == tmp_path / "metadata.json"

    @patch("classiview.ml.model_manager.hf_hub_download")
    def test_download_failure_raises_load_error(self, mock_download: MagicMock, tmp_path: Path) -> None:
        mock_download.side_effect = OSError("connection refused")
        settings = _make_settings(models_dir=str(tmp_path), model_repo_id="someone/pets")
        mgr = OnnxModelManager(settings)

        with pytest.raises(LoadError, match="Cannot download model.onnx"):
            mgr.ensure_downloaded()

    @patch("classiview.ml.model_manager.hf_hub_download")
    def test_local_directory_skips_download(self, mock_download: MagicMock, tmp_path: Path) -> None:
        _write_model_dir(tmp_path)
        mgr = OnnxModelManager(_make_settings(models_dir=str(tmp_path)))

        files = mgr.ensure_downloaded()

        mock_download.assert_not_called()
        assert files.model_path == tmp_path / "model.onnx"

    def test_unusable_models_dir_raises_load_error(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("x", encoding="utf-8")
        mgr = OnnxModelManager(_make_settings(models_dir=str(blocker / "sub"), model_repo_id="org/model"))

        with pytest.raises(LoadError, match="Cannot create models directory"):
            mgr.ensure_downloaded()

    def test_missing_local_file_raises_load_error(self, tmp_path: Path) -> None:
        mgr = OnnxModelManager(_make_settings(models_dir=str(tmp_path)))
        with pytest.raises(LoadError, match="not found"):
            mgr.ensure_downloaded()

    def test_malformed_metadata_raises_load_error(self, tmp_path: Path) -> None:
        path = tmp_path / "metadata.json"
        path.write_text("{not json", encoding="utf-8")
        mgr = OnnxModelManager(_make_settings(models_dir=str(tmp_path)))
        with pytest.raises(LoadError, match="Malformed metadata"):
            mgr.load_metadata(path)

    def test_invalid_metadata_raises_load_error(self, tmp_path: Path) -> None:
        path = tmp_path / "metadata.json"
        path.write_text(json.dumps({"labels": []}), encoding="utf-8")
        mgr = OnnxModelManager(_make_settings(models_dir=str(tmp_path)))
        with pytest.raises(LoadError, match="Invalid metadata"):
            mgr.load_metadata(path)

    @patch("classiview.ml.model_manager.InferenceSession")
    def test_load_returns_session_and_metadata(self, mock_session_cls: MagicMock, tmp_path: Path) -> None:
        _write_model_dir(tmp_path)
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mgr = OnnxModelManager(_make_settings(models_dir=str(tmp_path)))

        loaded = mgr.load()

        assert loaded.session is mock_session
        assert loaded.name == "tm-my-image-model"
        assert loaded.class_count == 3
        mock_session_cls.assert_called_once()
        assert mock_session_cls.call_args.args == (str(tmp_path / "model.onnx"),)

    @patch("classiview.ml.model_manager.InferenceSession")
    def test_model_name_falls_back_to_file_stem(self, mock_session_cls: MagicMock, tmp_path: Path) -> None:
        _write_model_dir(tmp_path, metadata={"labels": ["a", "b"]})
        mgr = OnnxModelManager(_make_settings(models_dir=str(tmp_path)))
        assert mgr.load().name == "model"

    @patch("classiview.ml.model_manager.InferenceSession")
    def test_unreadable_model_raises_load_error(self, mock_session_cls: MagicMock, tmp_path: Path) -> None:
        _write_model_dir(tmp_path)
        mock_session_cls.side_effect = RuntimeError("INVALID_PROTOBUF")
        mgr = OnnxModelManager(_make_settings(models_dir=str(tmp_path)))
        with pytest.raises(LoadError, match="INVALID_PROTOBUF"):
            mgr.load()

    def test_provider_building_cpu(self) -> None:
        mgr = OnnxModelManager(_make_settings(device="cpu"))
        assert mgr._providers == ["CPUExecutionProvider"]

    def test_provider_building_cuda(self) -> None:
        mgr = OnnxModelManager(_make_settings(device="cuda"))
        assert len(mgr._providers) == 2
        provider_name, provider_opts = mgr._providers[0]  # type: ignore[misc]
        assert provider_name == "CUDAExecutionProvider"
        assert provider_opts["device_id"] == 0
        assert mgr._providers[1] == "CPUExecutionProvider"

    def test_provider_building_openvino(self) -> None:
        mgr = OnnxModelManager(_make_settings(device="openvino"))
        assert len(mgr._providers) == 2
        provider_name, _provider_opts = mgr._providers[0]  # type: ignore[misc]
        assert provider_name == "OpenVINOExecutionProvider"
        assert mgr._providers[1] == "CPUExecutionProvider"
