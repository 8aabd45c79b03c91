#!/usr/bin/env python3
"""
Exploration Node

ROS 2 front end for the exploration controller:
- /map and /scan feed the grid map and scan corroboration
- tf2 provides the robot pose
- Nav2 NavigateToPose drives the robot to selected goals
- Trigger services start, pause/resume and stop exploration
- exploration/feedback and exploration/result report session progress
  and the terminal result as YAML text
"""
from typing import Optional

import rclpy
import yaml
from rclpy.action import ActionClient
from rclpy.callback_groups import MutuallyExclusiveCallbackGroup, ReentrantCallbackGroup
from rclpy.executors import MultiThreadedExecutor
from rclpy.node import Node
from rclpy.qos import DurabilityPolicy, HistoryPolicy, QoSProfile, ReliabilityPolicy
import tf2_ros
from tf2_ros import LookupException, ConnectivityException, ExtrapolationException
from action_msgs.msg import GoalStatus
from geometry_msgs.msg import PoseStamped, Twist
from nav2_msgs.action import NavigateToPose
from nav_msgs.msg import OccupancyGrid
from sensor_msgs.msg import LaserScan
from std_msgs.msg import String
from std_srvs.srv import Trigger
from visualization_msgs.msg import Marker

from drobot_exploration.config import ExplorationParams
from drobot_exploration.controller import ControlResponse, ExplorationController
from drobot_exploration.errors import PoseLookupFailure
from drobot_exploration.goal_handles import GoalHandleRegistry
from drobot_exploration.grid_map import GridMap
from drobot_exploration.pose_tracker import PoseTracker
from drobot_exploration.types import (
    ExplorationFeedback,
    ExplorationResult,
    Goal,
    GoalOutcome,
    LaserScanData,
    Point,
)
from drobot_exploration import utils


_STATUS_TO_OUTCOME = {
    GoalStatus.STATUS_SUCCEEDED: GoalOutcome.SUCCEEDED,
    GoalStatus.STATUS_CANCELED: GoalOutcome.PREEMPTED,
}


class Nav2GoalDispatcher:
    """Sends exploration goals to Nav2 and reports their outcome."""

    def __init__(self, node: Node, action_name: str = 'navigate_to_pose'):
        self.node = node
        self.client = ActionClient(
            node, NavigateToPose, action_name,
            callback_group=ReentrantCallbackGroup()
        )
        self.controller: Optional[ExplorationController] = None
        self.handles = GoalHandleRegistry()

    def dispatch(self, goal: Goal) -> bool:
        if not self.client.server_is_ready():
            self.node.get_logger().warn('Nav2 action server not available')
            return False

        goal_msg = NavigateToPose.Goal()
        goal_msg.pose.header.frame_id = self.controller.params.map_frame
        goal_msg.pose.header.stamp = self.node.get_clock().now().to_msg()
        goal_msg.pose.pose.position.x = goal.point.x
        goal_msg.pose.pose.position.y = goal.point.y
        _, _, qz, qw = utils.yaw_to_quaternion(goal.heading)
        goal_msg.pose.pose.orientation.z = qz
        goal_msg.pose.pose.orientation.w = qw

        self.handles.sent(goal.goal_id)
        future = self.client.send_goal_async(goal_msg)
        future.add_done_callback(
            lambda f, goal_id=goal.goal_id: self._goal_response_callback(goal_id, f)
        )
        return True

    def cancel(self, goal: Goal) -> None:
        handle = self.handles.cancel(goal.goal_id)
        if handle is not None:
            handle.cancel_goal_async()

    def _goal_response_callback(self, goal_id: int, future):
        """Handle goal acceptance/rejection."""
        handle = future.result()
        if not handle.accepted:
            cancelled = self.handles.is_cancelled(goal_id)
            self.handles.finished(goal_id)
            if cancelled:
                return
            self.node.get_logger().warn(f'Goal {goal_id} rejected by Nav2')
            self.controller.on_goal_result(goal_id, GoalOutcome.ABORTED)
            return

        if not self.handles.accepted(goal_id, handle):
            self.node.get_logger().info(f'Goal {goal_id} cancelled before acceptance')
            handle.cancel_goal_async()
            return

        result_future = handle.get_result_async()
        result_future.add_done_callback(
            lambda f: self._goal_result_callback(goal_id, f)
        )

    def _goal_result_callback(self, goal_id: int, future):
        """Handle navigation result."""
        self.handles.finished(goal_id)
        status = future.result().status
        outcome = _STATUS_TO_OUTCOME.get(status, GoalOutcome.ABORTED)
        self.controller.on_goal_result(goal_id, outcome)


class ExplorationNode(Node):
    """Frontier exploration node."""

    def __init__(self):
        super().__init__('exploration')

        self.params = self._load_params()
        self._init_components()
        self._init_publishers_and_subscribers()
        self._init_services()
        self._init_timers()

        self.get_logger().info('Exploration node ready')

    def _load_params(self) -> ExplorationParams:
        """Declare ROS parameters, optionally seeded from a YAML file."""
        params_file = self.declare_parameter('params_file', '').value
        defaults = ExplorationParams.from_yaml(params_file)

        values = {}
        for name, default in defaults.to_dict().items():
            values[name] = self.declare_parameter(name, default).value

        self.declare_parameter('map_topic', 'map')
        self.declare_parameter('scan_topic', 'scan')
        self.declare_parameter('goal_topic', 'exploration/goal')
        self.declare_parameter('cmd_vel_topic', 'cmd_vel')
        self.declare_parameter('navigate_action', 'navigate_to_pose')
        return ExplorationParams.from_dict(values)

    def _init_components(self):
        """Set up tf, goal dispatch and the controller."""
        self.tf_buffer = tf2_ros.Buffer()
        self.tf_listener = tf2_ros.TransformListener(self.tf_buffer, self)

        self.cmd_pub = self.create_publisher(
            Twist, self.get_parameter('cmd_vel_topic').value, 10
        )
        self.dispatcher = Nav2GoalDispatcher(
            self, self.get_parameter('navigate_action').value
        )
        self.pose_tracker = PoseTracker(
            self._lookup_pose,
            map_frame=self.params.map_frame,
            robot_frame=self.params.robot_frame,
            max_age=self.params.transform_tolerance + self.params.update_period,
            clock=lambda: self.get_clock().now().nanoseconds * 1e-9,
            logger=self.get_logger(),
        )
        self.controller = ExplorationController(
            self.pose_tracker,
            self.dispatcher,
            self._send_stop,
            params=self.params,
            logger=self.get_logger(),
        )
        self.dispatcher.controller = self.controller
        self.controller.add_feedback_callback(self._feedback_callback)
        self.controller.add_result_callback(self._result_callback)

    def _init_publishers_and_subscribers(self):
        """Set up ROS publishers and subscribers."""
        inputs = ReentrantCallbackGroup()
        self.map_sub = self.create_subscription(
            OccupancyGrid, self.get_parameter('map_topic').value,
            self._map_callback, 10, callback_group=inputs
        )
        self.scan_sub = self.create_subscription(
            LaserScan, self.get_parameter('scan_topic').value,
            self._scan_callback, 10, callback_group=inputs
        )
        self.extern_goal_sub = self.create_subscription(
            PoseStamped, self.get_parameter('goal_topic').value,
            self._extern_goal_callback, 10, callback_group=inputs
        )
        self.goal_marker_pub = self.create_publisher(Marker, 'exploration/goal_marker', 10)
        self.feedback_pub = self.create_publisher(String, 'exploration/feedback', 10)

        # Latched: late subscribers still get the last result
        result_qos = QoSProfile(
            reliability=ReliabilityPolicy.RELIABLE,
            durability=DurabilityPolicy.TRANSIENT_LOCAL,
            history=HistoryPolicy.KEEP_LAST,
            depth=1
        )
        self.result_pub = self.create_publisher(String, 'exploration/result', result_qos)

    def _init_services(self):
        """Set up the control surface."""
        control = ReentrantCallbackGroup()
        self.start_server = self.create_service(
            Trigger, 'exploration/start', self._start_callback, callback_group=control
        )
        self.pause_server = self.create_service(
            Trigger, 'exploration/pause', self._pause_callback, callback_group=control
        )
        self.stop_exploration_server = self.create_service(
            Trigger, 'exploration/stop_exploration',
            self._stop_exploration_callback, callback_group=control
        )
        self.stop_server = self.create_service(
            Trigger, 'exploration/stop', self._stop_callback, callback_group=control
        )

    def _init_timers(self):
        """Set up the decision loop timer."""
        self.explore_timer = self.create_timer(
            self.params.update_period, self.controller.run_once,
            callback_group=MutuallyExclusiveCallbackGroup()
        )

    # ==================== Collaborators ====================

    def _lookup_pose(self, map_frame: str, robot_frame: str):
        """Robot pose in the map frame as (x, y, yaw, stamp)."""
        try:
            transform = self.tf_buffer.lookup_transform(
                map_frame, robot_frame, rclpy.time.Time()
            )
        except (LookupException, ConnectivityException, ExtrapolationException) as e:
            raise PoseLookupFailure(f'{map_frame} -> {robot_frame}: {e}') from e

        t = transform.transform.translation
        q = transform.transform.rotation
        stamp = transform.header.stamp.sec + transform.header.stamp.nanosec * 1e-9
        return t.x, t.y, utils.quaternion_to_yaw(q.x, q.y, q.z, q.w), stamp

    def _send_stop(self):
        self.cmd_pub.publish(Twist())

    # ==================== Callbacks ====================

    def _map_callback(self, msg: OccupancyGrid):
        self.controller.on_map(GridMap.from_message(msg))

    def _scan_callback(self, msg: LaserScan):
        self.controller.on_scan(LaserScanData.from_message(msg))

    def _extern_goal_callback(self, msg: PoseStamped):
        response = self.controller.on_external_goal(
            Point(msg.pose.position.x, msg.pose.position.y),
            frame_id=msg.header.frame_id
        )
        if not response.accepted:
            self.get_logger().warn(f'External goal ignored: {response.message}')

    def _start_callback(self, request, response):
        return self._fill(response, self.controller.start_exploration())

    def _pause_callback(self, request, response):
        return self._fill(response, self.controller.pause())

    def _stop_exploration_callback(self, request, response):
        return self._fill(response, self.controller.stop_exploration())

    def _stop_callback(self, request, response):
        return self._fill(response, self.controller.global_stop())

    @staticmethod
    def _fill(response, control: ControlResponse):
        response.success = control.accepted
        response.message = f'{control.ack.value}: {control.message} (state: {control.state.value})'
        return response

    def _feedback_callback(self, feedback: ExplorationFeedback):
        if feedback.goal is not None:
            self._publish_goal_marker(feedback.goal)
        self.feedback_pub.publish(String(data=yaml.safe_dump(feedback.to_dict())))
        self.get_logger().info(f'Cells explored: {feedback.cells_explored}')

    def _result_callback(self, result: ExplorationResult):
        self.get_logger().info(
            f'\n=== Exploration {result.status.value} ===\n'
            f'{result.message}\n'
            f'Goals reached: {result.goals_reached}\n'
            f'Cells explored: {result.cells_explored}'
        )
        self.result_pub.publish(String(data=yaml.safe_dump(result.to_dict())))

    def _publish_goal_marker(self, goal: Goal):
        """Publish goal position marker for RViz visualization."""
        marker = Marker()
        marker.header.frame_id = self.params.map_frame
        marker.header.stamp = self.get_clock().now().to_msg()
        marker.ns = 'exploration_goal'
        marker.id = 0
        marker.type = Marker.ARROW
        marker.action = Marker.ADD
        marker.pose.position.x = goal.point.x
        marker.pose.position.y = goal.point.y
        _, _, qz, qw = utils.yaw_to_quaternion(goal.heading)
        marker.pose.orientation.z = qz
        marker.pose.orientation.w = qw
        marker.scale.x = 0.4
        marker.scale.y = 0.08
        marker.scale.z = 0.08
        marker.color.r = 1.0 if goal.external else 0.0
        marker.color.g = 0.0 if goal.external else 1.0
        marker.color.a = 0.8
        self.goal_marker_pub.publish(marker)


def main(args=None):
    rclpy.init(args=args)
    node = ExplorationNode()
    executor = MultiThreadedExecutor()
    executor.add_node(node)

    try:
        executor.spin()
    except KeyboardInterrupt:
        node.controller.global_stop()
    finally:
        node.destroy_node()
        rclpy.shutdown()


if __name__ == '__main__':
    main()
