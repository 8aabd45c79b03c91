#!/usr/bin/env python3
"""
Exploration Launch File

Starts the frontier exploration node. SLAM and Nav2 must already be running.

Usage:
  ros2 launch drobot_exploration exploration.launch.py
  ros2 launch drobot_exploration exploration.launch.py params_file:=/path/to/exploration.yaml
  ros2 service call /exploration/start std_srvs/srv/Trigger
"""
import os
from ament_index_python.packages import get_package_share_directory
from launch import LaunchDescription
from launch.actions import DeclareLaunchArgument
from launch.substitutions import LaunchConfiguration
from launch_ros.actions import Node


def generate_launch_description():
    pkg_dir = get_package_share_directory('drobot_exploration')
    default_params = os.path.join(pkg_dir, 'config', 'exploration.yaml')

    use_sim_time = LaunchConfiguration('use_sim_time')
    params_file = LaunchConfiguration('params_file')

    return LaunchDescription([
        DeclareLaunchArgument('use_sim_time', default_value='false'),
        DeclareLaunchArgument('params_file', default_value=default_params),

        Node(
            package='drobot_exploration',
            executable='exploration_node',
            name='exploration',
            output='screen',
            parameters=[params_file, {'use_sim_time': use_sim_time}],
        ),
    ])
