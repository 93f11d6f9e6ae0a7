from pathlib import Path

import pytest
import yaml

from staged_eval.config import config_from_dict, load_eval_config


def test_default_config_loads():
    config = load_eval_config(Path(__file__).resolve().parents[1] / "configs" / "default.yaml")

    assert config.metrics == ["RMSE", "Logloss", "AUC"]
    assert config.last == 0
    assert config.process_iterations_step == -1
    assert config.tensorboard


def test_defaults_for_missing_sections(tmp_path):
    path = tmp_path / "cfg.yaml"
    path.write_text(yaml.safe_dump({"paths": {"model": "m.json", "datasets": "d.npz"}, "metrics": "AUC"}))

    config = load_eval_config(path)

    assert config.dataset_paths == [Path("d.npz")]
    assert config.metrics == ["AUC"]
    assert config.step == 1
    assert config.result_dir == Path("eval_result")
    assert config.metrics_file == "eval_metrics.tsv"
    assert not config.save_stats


def test_round_trip_through_dict():
    cfg = {
        "paths": {"model": "m.json", "datasets": ["a.npz", "b.npz"], "tmp_dir": "t", "result_dir": "r"},
        "plot": {"first": 2, "last": 10, "step": 3, "process_iterations_step": 2, "non_additive_in_memory": True},
        "metrics": ["NDCG:top=5"],
        "output": {"metrics_file": "x.tsv", "save_metrics": False, "save_stats": True, "tensorboard": False},
        "runtime": {"thread_count": 2, "delete_tmp_dir_on_exit": False, "show_progress": True, "log_level": "DEBUG"},
    }
    assert config_from_dict(cfg).to_dict() == cfg


@pytest.mark.parametrize(
    "cfg,match",
    [
        ({"metrics": ["RMSE"]}, "paths.model"),
        ({"paths": {"model": "m.json"}, "metrics": ["RMSE"]}, "paths.datasets"),
        ({"paths": {"model": "m.json", "datasets": ["d.npz"]}}, "metric"),
    ],
)
def test_missing_keys(cfg, match):
    with pytest.raises(ValueError, match=match):
        config_from_dict(cfg)
