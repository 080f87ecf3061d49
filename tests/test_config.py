"""Tests for solve options and objective weights."""

import pytest
import yaml

from kinopt import ConfigurationError, ObjectiveWeights, SolveOptions, TrajectoryMode


class TestSolveOptions:

    def test_defaults(self):
        options = SolveOptions()
        assert options.restart_count == 1
        assert options.mode is TrajectoryMode.SEQUENTIAL
        assert options.weights.collision == 100.0
        assert options.validate()

    @pytest.mark.parametrize("changes", [
        {'margin': -0.1},
        {'iteration_budget': 0},
        {'time_budget': 0.0},
        {'restart_count': 0},
        {'max_workers': 0},
        {'finite_difference_step': 0.0},
        {'optimizer_method': 'Nelder-Mead'},
        {'mode': 'parallel'},
        {'weights': {'collision': -1.0}},
    ])
    def test_invalid_values(self, changes):
        with pytest.raises(ConfigurationError):
            SolveOptions(**changes)

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            SolveOptions(margin=-1.0)

    def test_coercion(self):
        options = SolveOptions(mode='joint', weights={'smoothness': 0.01}, initial_guess=(1, 2))
        assert options.mode is TrajectoryMode.JOINT
        assert options.weights == ObjectiveWeights(smoothness=0.01)
        assert options.initial_guess == [1.0, 2.0]

    def test_replace_validates(self):
        options = SolveOptions()
        assert options.replace(restart_count=4).restart_count == 4
        assert options.restart_count == 1
        with pytest.raises(ConfigurationError):
            options.replace(restart_count=-1)

    def test_unknown_keys_rejected(self):
        with pytest.raises(ConfigurationError, match="Unknown solve options"):
            SolveOptions.from_dict({'margin': 0.1, 'restarts': 3})
        with pytest.raises(ConfigurationError, match="Unknown objective weights"):
            ObjectiveWeights.from_dict({'pose': 1.0})

    def test_yaml_round_trip(self, tmp_path):
        options = SolveOptions(margin=0.1, restart_count=4, mode='joint', time_budget=2.5,
                               locked_dofs={'elbow': 0.25}, weights={'collision': 50.0})
        path = tmp_path / 'options.yaml'
        options.save_yaml(str(path))

        with open(path) as f:
            raw = yaml.safe_load(f)
        assert raw['mode'] == 'joint'
        assert raw['weights']['collision'] == 50.0

        assert SolveOptions.from_yaml(str(path)) == options

    def test_empty_yaml_gives_defaults(self, tmp_path):
        path = tmp_path / 'empty.yaml'
        path.write_text('')
        assert SolveOptions.from_yaml(str(path)) == SolveOptions()

    def test_missing_yaml(self, tmp_path):
        with pytest.raises(OSError):
            SolveOptions.from_yaml(str(tmp_path / 'missing.yaml'))
