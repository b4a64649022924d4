"""
流程定义解析器

支持 BPMN 2.0 XML 文档，以及等价的 YAML/JSON/字典描述。
"""
import json
import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml
from jsonschema import Draft7Validator

from ..models.definition import (
    ProcessDefinition, FlowNode, SequenceFlow, NodeType, EventTrigger,
    TimerKind, TimerDefinition, AssignmentRule
)
from ..exceptions import ConditionEvaluationError, DefinitionParseError, DefinitionValidationError
from .conditions import ConditionEvaluator
from .timers import schedule_for


logger = logging.getLogger(__name__)


BPMN_MODEL_NS = 'http://www.omg.org/spec/BPMN/20100524/MODEL'
PROCESS_MAKER_NS = 'http://processmaker.com/BPMN/2.0/Schema.xsd'

# 流程内可忽略的非执行元素
IGNORED_ELEMENTS = frozenset({
    'documentation', 'extensionElements', 'laneSet', 'textAnnotation',
    'association', 'dataObject', 'dataObjectReference', 'dataStoreReference',
    'incoming', 'outgoing', 'property', 'ioSpecification',
})

EVENT_TRIGGERS = {
    'messageEventDefinition': EventTrigger.MESSAGE,
    'signalEventDefinition': EventTrigger.SIGNAL,
    'timerEventDefinition': EventTrigger.TIMER,
    'errorEventDefinition': EventTrigger.ERROR,
    'terminateEventDefinition': EventTrigger.TERMINATE,
}

NODE_TYPES = {node_type.value: node_type for node_type in NodeType}

_ID = {"type": ["string", "integer"]}

# 字典格式流程定义的结构
DEFINITION_SCHEMA = {
    "type": "object",
    "properties": {
        "id": _ID,
        "name": {"type": "string"},
        "nodes": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "type"],
                "properties": {
                    "id": _ID,
                    "type": {"type": "string"},
                    "name": {"type": "string"},
                    "assigned_user": _ID,
                    "assignment": {
                        "type": "object",
                        "properties": {
                            "type": {"enum": ["user", "unassigned"]},
                            "user_id": _ID,
                        },
                    },
                    "message": {"type": "string"},
                    "signal": {"type": "string"},
                    "timer": {"type": ["string", "object"]},
                    "trigger": {"type": "string"},
                    "default": {"type": "string"},
                },
            },
        },
        "flows": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "id": _ID,
                    "from": _ID,
                    "to": _ID,
                    "source": _ID,
                    "target": _ID,
                    "condition": {"type": ["string", "null"]},
                    "name": {"type": "string"},
                },
            },
        },
    },
}

_DEFINITION_VALIDATOR = Draft7Validator(DEFINITION_SCHEMA)


def full_tag(tag: str, namespace: str = BPMN_MODEL_NS) -> str:
    return '{%s}%s' % (namespace, tag)


def local_name(tag: str) -> str:
    return tag.rsplit('}', 1)[-1]


class DefinitionParser:
    """流程定义解析器"""

    def __init__(self):
        self.parsers = {
            'bpmn': self.parse_xml,
            'xml': self.parse_xml,
            'yaml': self._parse_text,
            'yml': self._parse_text,
            'json': self._parse_text,
        }
        self.conditions = ConditionEvaluator()

    def parse(self, source: Union[str, Path, Dict[str, Any]],
              definition_id: Optional[str] = None) -> ProcessDefinition:
        """
        解析流程定义

        Args:
            source: BPMN XML 字符串、YAML/JSON 字符串、字典或文件路径
            definition_id: 覆盖文档中的流程ID

        Returns:
            ProcessDefinition: 解析并验证后的流程定义
        """
        if isinstance(source, dict):
            definition = self._parse_dict(source, json.dumps(source, sort_keys=True))
        elif isinstance(source, Path):
            definition = self.parse_file(source)
        elif isinstance(source, str):
            text = source.strip()
            if text.startswith('<'):
                definition = self.parse_xml(text)
            elif '\n' not in text and Path(text).suffix.lower().lstrip('.') in self.parsers \
                    and Path(text).is_file():
                definition = self.parse_file(Path(text))
            else:
                definition = self._parse_text(text)
        else:
            raise DefinitionParseError(f"Unsupported source type: {type(source)}")

        if definition_id:
            definition.id = definition_id

        errors = definition.validate()
        if errors:
            raise DefinitionValidationError(errors)

        logger.debug(
            f"Parsed process definition '{definition.id}' "
            f"with {len(definition.nodes)} nodes and {len(definition.flows)} flows"
        )
        return definition

    def parse_file(self, file_path: Path) -> ProcessDefinition:
        """解析流程定义文件"""
        suffix = file_path.suffix.lower().lstrip('.')
        if suffix not in self.parsers:
            raise DefinitionParseError(f"Unsupported file format: {suffix}")

        with open(file_path, 'r', encoding='utf-8') as f:
            content = f.read()

        return self.parsers[suffix](content)

    def _parse_text(self, content: str) -> ProcessDefinition:
        """解析 YAML/JSON 字符串（JSON 按 YAML 的子集处理）"""
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise DefinitionParseError(f"Failed to parse YAML: {e}") from e

        if not isinstance(data, dict):
            raise DefinitionParseError("Process definition must be a mapping")
        return self._parse_dict(data, content)

    # BPMN XML

    def parse_xml(self, content: str) -> ProcessDefinition:
        """解析 BPMN 2.0 XML 文档"""
        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            raise DefinitionParseError(f"Failed to parse BPMN XML: {e}") from e

        if root.tag == full_tag('process'):
            process = root
        else:
            processes = root.findall('bpmn:process', {'bpmn': BPMN_MODEL_NS})
            if not processes:
                raise DefinitionParseError("BPMN document contains no process element")
            executable = [p for p in processes if p.get('isExecutable', 'true') != 'false']
            process = (executable or processes)[0]

        event_names = self._collect_event_names(root)

        definition = ProcessDefinition(
            id=process.get('id', ''),
            name=process.get('name', ''),
            content=content
        )

        flows = []
        for element in process:
            tag = local_name(element.tag)
            if tag in IGNORED_ELEMENTS:
                continue
            if tag == 'sequenceFlow':
                flows.append(self._parse_xml_flow(element))
            elif tag in NODE_TYPES:
                node = self._parse_xml_node(NODE_TYPES[tag], element, event_names)
                if node.id in definition.nodes:
                    raise DefinitionParseError(f"Duplicate node id '{node.id}'")
                definition.nodes[node.id] = node
            else:
                raise DefinitionParseError(
                    f"Unsupported BPMN element '{tag}' (id '{element.get('id', '')}')"
                )

        self._link_flows(definition, flows)
        return definition

    def _collect_event_names(self, root: ET.Element) -> Dict[str, str]:
        """收集 message/signal 定义的名称"""
        names = {}
        for tag in ('message', 'signal'):
            for element in root.iter(full_tag(tag)):
                element_id = element.get('id')
                if element_id:
                    names[element_id] = element.get('name') or element_id
        return names

    def _parse_xml_node(self, node_type: NodeType, element: ET.Element,
                        event_names: Dict[str, str]) -> FlowNode:
        node_id = element.get('id')
        if not node_id:
            raise DefinitionParseError(f"BPMN element '{node_type.value}' has no id")

        trigger, event_name, timer = self._parse_event_definition(node_id, element, event_names)

        assignment = AssignmentRule()
        if element.get(full_tag('assignment', PROCESS_MAKER_NS)) == 'user':
            assigned = element.get(full_tag('assignedUsers', PROCESS_MAKER_NS), '')
            user_ids = [user_id.strip() for user_id in assigned.split(',') if user_id.strip()]
            if user_ids:
                assignment = AssignmentRule(type='user', user_id=user_ids[0])

        return FlowNode(
            id=node_id,
            type=node_type,
            name=element.get('name', ''),
            assignment=assignment,
            trigger=trigger,
            event_name=event_name,
            timer=timer,
            default_flow=element.get('default')
        )

    def _parse_event_definition(self, node_id: str, element: ET.Element,
                                event_names: Dict[str, str]
                                ) -> Tuple[EventTrigger, Optional[str], Optional[TimerDefinition]]:
        definitions = [child for child in element if local_name(child.tag) in EVENT_TRIGGERS]
        if not definitions:
            return EventTrigger.NONE, None, None
        if len(definitions) > 1:
            raise DefinitionParseError(f"Node '{node_id}' has more than one event definition")

        child = definitions[0]
        trigger = EVENT_TRIGGERS[local_name(child.tag)]

        if trigger == EventTrigger.MESSAGE:
            ref = child.get('messageRef')
            return trigger, event_names.get(ref, ref), None
        if trigger == EventTrigger.SIGNAL:
            ref = child.get('signalRef')
            return trigger, event_names.get(ref, ref), None
        if trigger == EventTrigger.TIMER:
            timer = None
            for kind in TimerKind:
                expression = child.find(full_tag(kind.value))
                if expression is not None and (expression.text or '').strip():
                    timer = self._build_timer(node_id, kind, expression.text.strip())
                    break
            if timer is None and child.find(full_tag('timeCycle')) is not None:
                raise DefinitionParseError(f"Timer cycles are not supported (node '{node_id}')")
            return trigger, None, timer
        if trigger == EventTrigger.ERROR:
            return trigger, child.get('errorRef'), None
        return trigger, None, None

    def _parse_xml_flow(self, element: ET.Element) -> SequenceFlow:
        condition = element.find(full_tag('conditionExpression'))
        expression = None
        if condition is not None and (condition.text or '').strip():
            expression = condition.text.strip()
            self._check_condition(element.get('id', ''), expression)
        return SequenceFlow(
            id=element.get('id', ''),
            source=element.get('sourceRef', ''),
            target=element.get('targetRef', ''),
            condition=expression,
            name=element.get('name', '')
        )

    # YAML / JSON / dict

    def _parse_dict(self, data: Dict[str, Any], content: str) -> ProcessDefinition:
        """解析字典格式的流程定义"""
        if 'process' in data:
            data = data['process']

        errors = [
            f"{'.'.join(str(p) for p in error.absolute_path) or 'root'}: {error.message}"
            for error in _DEFINITION_VALIDATOR.iter_errors(data)
        ]
        if errors:
            raise DefinitionValidationError(errors)

        definition = ProcessDefinition(
            id=str(data.get('id', '')),
            name=data.get('name', ''),
            content=content
        )

        for node_data in data.get('nodes', []):
            node = self._parse_node(node_data)
            if node.id in definition.nodes:
                raise DefinitionParseError(f"Duplicate node id '{node.id}'")
            definition.nodes[node.id] = node

        flows = [
            self._parse_flow(index, flow_data)
            for index, flow_data in enumerate(data.get('flows', []))
        ]
        self._link_flows(definition, flows)
        return definition

    def _parse_node(self, data: Dict[str, Any]) -> FlowNode:
        """解析节点"""
        if 'id' not in data or 'type' not in data:
            raise DefinitionParseError(f"Node requires 'id' and 'type': {data}")

        node_id = str(data['id'])
        node_type = NODE_TYPES.get(data['type'])
        if node_type is None:
            raise DefinitionParseError(f"Unsupported node type '{data['type']}' (node '{node_id}')")

        assignment = AssignmentRule()
        rule = data.get('assignment')
        if isinstance(rule, dict):
            if rule.get('type') == 'user' and rule.get('user_id') is not None:
                assignment = AssignmentRule(type='user', user_id=str(rule['user_id']))
        elif data.get('assigned_user') is not None:
            assignment = AssignmentRule(type='user', user_id=str(data['assigned_user']))

        trigger = EventTrigger.NONE
        event_name = None
        timer = None
        if data.get('message'):
            trigger, event_name = EventTrigger.MESSAGE, str(data['message'])
        elif data.get('signal'):
            trigger, event_name = EventTrigger.SIGNAL, str(data['signal'])
        elif data.get('timer'):
            trigger = EventTrigger.TIMER
            timer = self._parse_timer(node_id, data['timer'])
        elif data.get('trigger'):
            try:
                trigger = EventTrigger(data['trigger'])
            except ValueError as e:
                raise DefinitionParseError(
                    f"Unsupported event trigger '{data['trigger']}' (node '{node_id}')"
                ) from e

        return FlowNode(
            id=node_id,
            type=node_type,
            name=data.get('name', ''),
            assignment=assignment,
            trigger=trigger,
            event_name=event_name,
            timer=timer,
            default_flow=data.get('default')
        )

    def _parse_timer(self, node_id: str, data: Any) -> TimerDefinition:
        if isinstance(data, str):
            return self._build_timer(node_id, TimerKind.DURATION, data)
        if 'cycle' in data:
            raise DefinitionParseError(f"Timer cycles are not supported (node '{node_id}')")
        if 'duration' in data:
            return self._build_timer(node_id, TimerKind.DURATION, str(data['duration']))
        if 'date' in data:
            return self._build_timer(node_id, TimerKind.DATE, str(data['date']))
        raise DefinitionParseError(f"Timer of node '{node_id}' needs a 'duration' or 'date'")

    def _build_timer(self, node_id: str, kind: TimerKind, expression: str) -> TimerDefinition:
        timer = TimerDefinition(kind=kind, expression=expression)
        # 时长需能加到当前时间上
        try:
            schedule_for(timer)
        except (ValueError, OverflowError) as e:
            raise DefinitionParseError(f"Invalid timer on node '{node_id}': {e}") from e
        return timer

    def _parse_flow(self, index: int, data: Dict[str, Any]) -> SequenceFlow:
        """解析顺序流"""
        source = data.get('from', data.get('source'))
        target = data.get('to', data.get('target'))
        if source is None or target is None:
            raise DefinitionParseError(f"Sequence flow requires 'from' and 'to': {data}")
        flow_id = str(data.get('id', f"flow_{index + 1}"))
        condition = data.get('condition')
        if condition is not None:
            condition = str(condition)
            self._check_condition(flow_id, condition)
        return SequenceFlow(
            id=flow_id,
            source=str(source),
            target=str(target),
            condition=condition,
            name=data.get('name', '')
        )

    def _check_condition(self, flow_id: str, expression: str):
        if not expression.strip():
            return
        try:
            self.conditions.check(expression)
        except ConditionEvaluationError as e:
            raise DefinitionParseError(f"Invalid condition on sequence flow '{flow_id}': {e}") from e

    def _link_flows(self, definition: ProcessDefinition, flows: List[SequenceFlow]):
        """登记顺序流并建立节点的出入口（保持文档顺序）"""
        for flow in flows:
            if not flow.id:
                raise DefinitionParseError(
                    f"Sequence flow from '{flow.source}' to '{flow.target}' has no id"
                )
            if flow.id in definition.flows:
                raise DefinitionParseError(f"Duplicate sequence flow id '{flow.id}'")
            definition.flows[flow.id] = flow

            source = definition.nodes.get(flow.source)
            if source:
                source.outgoing.append(flow.id)
            target = definition.nodes.get(flow.target)
            if target:
                target.incoming.append(flow.id)
