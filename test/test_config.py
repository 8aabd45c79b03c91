#!/usr/bin/env python3
"""Unit tests for exploration parameters."""
import math
import os
import sys
import tempfile

import pytest
import yaml

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from drobot_exploration.config import Config, ExplorationParams


# ==================== Fixtures ====================

@pytest.fixture
def yaml_file():
    """Create temporary YAML files and remove them afterwards."""
    paths = []

    def write(content):
        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
            yaml.dump(content, f)
            paths.append(f.name)
            return f.name

    yield write
    for path in paths:
        os.unlink(path)


# ==================== Tests ====================

class TestDefaults:
    def test_defaults_follow_config(self):
        params = ExplorationParams()
        assert params.angular_increment == Config.ANGULAR_INCREMENT
        assert params.full_rotation is True
        assert params.map_frame == 'map'
        assert params.update_period == pytest.approx(1.0 / Config.UPDATE_FREQUENCY)

    def test_to_dict_round_trip(self):
        params = ExplorationParams(update_frequency=5.0, robot_frame='base_footprint')
        assert ExplorationParams.from_dict(params.to_dict()) == params


class TestFromDict:
    def test_ignores_unknown_keys(self):
        params = ExplorationParams.from_dict({'update_frequency': 4, 'map_topic': 'map'})
        assert params.update_frequency == 4.0
        assert isinstance(params.update_frequency, float)

    def test_casts_types(self):
        params = ExplorationParams.from_dict({'max_goal_failures': 3.0, 'full_rotation': 0})
        assert params.max_goal_failures == 3
        assert params.full_rotation is False

    def test_none(self):
        assert ExplorationParams.from_dict(None) == ExplorationParams()


class TestFromYaml:
    def test_flat_file(self, yaml_file):
        path = yaml_file({'angular_increment': 0.1, 'max_pose_failures': 2})
        params = ExplorationParams.from_yaml(path)
        assert params.angular_increment == 0.1
        assert params.max_pose_failures == 2

    def test_ros_parameter_file(self, yaml_file):
        path = yaml_file({'exploration': {'ros__parameters': {
            'robot_frame': 'base_footprint',
            'full_rotation': False,
            'angular_range': math.pi,
        }}})
        params = ExplorationParams.from_yaml(path)
        assert params.robot_frame == 'base_footprint'
        assert params.full_rotation is False
        assert params.angular_range == pytest.approx(math.pi)

    def test_missing_file(self):
        assert ExplorationParams.from_yaml('/nonexistent/exploration.yaml') == ExplorationParams()

    def test_empty_file(self, yaml_file):
        path = yaml_file(None)
        assert ExplorationParams.from_yaml(path) == ExplorationParams()


class TestValidation:
    @pytest.mark.parametrize('overrides', [
        {'angular_increment': 0.0},
        {'update_frequency': -1.0},
        {'transform_tolerance': -0.1},
        {'max_pose_failures': 0},
        {'max_goal_failures': 0},
        {'info_gain_radius': -1},
        {'full_rotation': False, 'angular_range': 7.0},
    ])
    def test_invalid(self, overrides):
        with pytest.raises(ValueError):
            ExplorationParams(**overrides)
