"""
测试用流程定义
"""

SIMPLE_TASK = {
    "process": {
        "id": "simple",
        "name": "Simple Task",
        "nodes": [
            {"id": "start1", "type": "startEvent", "name": "Start"},
            {"id": "task1", "type": "userTask", "name": "Approve",
             "assignment": {"type": "user", "user_id": 42}},
            {"id": "end1", "type": "endEvent"},
        ],
        "flows": [
            {"from": "start1", "to": "task1"},
            {"from": "task1", "to": "end1"},
        ],
    }
}

EXCLUSIVE_CHOICE = {
    "process": {
        "id": "exclusive",
        "name": "Expense Routing",
        "nodes": [
            {"id": "start1", "type": "startEvent"},
            {"id": "gw", "type": "exclusiveGateway", "default": "to_review"},
            {"id": "auto_approve", "type": "task"},
            {"id": "small_review", "type": "userTask", "assigned_user": "5"},
            {"id": "review", "type": "userTask", "assigned_user": "9"},
            {"id": "end1", "type": "endEvent"},
        ],
        "flows": [
            {"id": "f1", "from": "start1", "to": "gw"},
            {"id": "to_auto", "from": "gw", "to": "auto_approve", "condition": "amount < 10"},
            {"id": "to_small", "from": "gw", "to": "small_review", "condition": "amount < 100"},
            {"id": "to_review", "from": "gw", "to": "review"},
            {"id": "f2", "from": "auto_approve", "to": "end1"},
            {"id": "f3", "from": "small_review", "to": "end1"},
            {"id": "f4", "from": "review", "to": "end1"},
        ],
    }
}

PARALLEL_APPROVAL = {
    "process": {
        "id": "parallel",
        "name": "Parallel Approval",
        "nodes": [
            {"id": "start1", "type": "startEvent"},
            {"id": "split", "type": "parallelGateway"},
            {"id": "legal", "type": "userTask", "assigned_user": "1"},
            {"id": "finance", "type": "userTask", "assigned_user": "2"},
            {"id": "join", "type": "parallelGateway"},
            {"id": "archive", "type": "task"},
            {"id": "end1", "type": "endEvent"},
        ],
        "flows": [
            {"from": "start1", "to": "split"},
            {"from": "split", "to": "legal"},
            {"from": "split", "to": "finance"},
            {"from": "legal", "to": "join"},
            {"from": "finance", "to": "join"},
            {"from": "join", "to": "archive"},
            {"from": "archive", "to": "end1"},
        ],
    }
}

INCLUSIVE_REVIEW = {
    "process": {
        "id": "inclusive",
        "name": "Inclusive Review",
        "nodes": [
            {"id": "start1", "type": "startEvent"},
            {"id": "split", "type": "inclusiveGateway", "default": "to_general"},
            {"id": "tech", "type": "userTask"},
            {"id": "legal", "type": "userTask"},
            {"id": "general", "type": "userTask"},
            {"id": "join", "type": "inclusiveGateway"},
            {"id": "end1", "type": "endEvent"},
        ],
        "flows": [
            {"id": "f1", "from": "start1", "to": "split"},
            {"id": "to_tech", "from": "split", "to": "tech", "condition": "tech"},
            {"id": "to_legal", "from": "split", "to": "legal", "condition": "legal"},
            {"id": "to_general", "from": "split", "to": "general"},
            {"id": "f2", "from": "tech", "to": "join"},
            {"id": "f3", "from": "legal", "to": "join"},
            {"id": "f4", "from": "general", "to": "join"},
            {"id": "f5", "from": "join", "to": "end1"},
        ],
    }
}

MESSAGE_WAIT = {
    "process": {
        "id": "message",
        "name": "Wait For Payment",
        "nodes": [
            {"id": "start1", "type": "startEvent"},
            {"id": "wait_payment", "type": "intermediateCatchEvent", "message": "payment_received"},
            {"id": "wait_signal", "type": "intermediateCatchEvent", "signal": "shipped"},
            {"id": "end1", "type": "endEvent"},
        ],
        "flows": [
            {"from": "start1", "to": "wait_payment"},
            {"from": "wait_payment", "to": "wait_signal"},
            {"from": "wait_signal", "to": "end1"},
        ],
    }
}

TIMER_WAIT = {
    "process": {
        "id": "timer",
        "name": "Reminder",
        "nodes": [
            {"id": "start1", "type": "startEvent"},
            {"id": "wait", "type": "intermediateCatchEvent", "timer": {"duration": "PT1H"}},
            {"id": "remind", "type": "userTask", "assigned_user": "3"},
            {"id": "end1", "type": "endEvent"},
        ],
        "flows": [
            {"from": "start1", "to": "wait"},
            {"from": "wait", "to": "remind"},
            {"from": "remind", "to": "end1"},
        ],
    }
}

TERMINATE_RACE = {
    "process": {
        "id": "terminate",
        "name": "Terminate Race",
        "nodes": [
            {"id": "start1", "type": "startEvent"},
            {"id": "split", "type": "parallelGateway"},
            {"id": "fast", "type": "userTask"},
            {"id": "slow", "type": "userTask"},
            {"id": "stop", "type": "endEvent", "trigger": "terminate"},
            {"id": "end1", "type": "endEvent"},
        ],
        "flows": [
            {"from": "start1", "to": "split"},
            {"from": "split", "to": "fast"},
            {"from": "split", "to": "slow"},
            {"from": "fast", "to": "stop"},
            {"from": "slow", "to": "end1"},
        ],
    }
}

ERROR_END = {
    "process": {
        "id": "error_end",
        "name": "Error End",
        "nodes": [
            {"id": "start1", "type": "startEvent"},
            {"id": "gw", "type": "exclusiveGateway", "default": "to_end"},
            {"id": "failed", "type": "endEvent", "trigger": "error"},
            {"id": "end1", "type": "endEvent"},
        ],
        "flows": [
            {"id": "f1", "from": "start1", "to": "gw"},
            {"id": "to_failed", "from": "gw", "to": "failed", "condition": "broken"},
            {"id": "to_end", "from": "gw", "to": "end1"},
        ],
    }
}

ORDER_BPMN = """<?xml version="1.0"?>
<bpmn:definitions xmlns:bpmn="http://www.omg.org/spec/BPMN/20100524/MODEL"
                  xmlns:bpmndi="http://www.omg.org/spec/BPMN/20100524/DI"
                  xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance"
                  xmlns:pm="http://processmaker.com/BPMN/2.0/Schema.xsd"
                  id="order_definitions">
  <bpmn:message id="msg_payment" name="payment_received" />
  <bpmn:process id="order" name="Order Fulfilment" isExecutable="true">
    <bpmn:documentation>Review an order, wait for payment, then ship it.</bpmn:documentation>
    <bpmn:startEvent id="start1" name="Order Placed">
      <bpmn:outgoing>f1</bpmn:outgoing>
    </bpmn:startEvent>
    <bpmn:userTask id="review" name="Review Order" pm:assignment="user" pm:assignedUsers="7,8">
      <bpmn:incoming>f1</bpmn:incoming>
      <bpmn:outgoing>f2</bpmn:outgoing>
    </bpmn:userTask>
    <bpmn:exclusiveGateway id="gw" name="Approved?" default="to_rejected" />
    <bpmn:intermediateCatchEvent id="wait_payment" name="Payment">
      <bpmn:messageEventDefinition messageRef="msg_payment" />
    </bpmn:intermediateCatchEvent>
    <bpmn:intermediateCatchEvent id="cooldown" name="Cooldown">
      <bpmn:timerEventDefinition>
        <bpmn:timeDuration>PT10M</bpmn:timeDuration>
      </bpmn:timerEventDefinition>
    </bpmn:intermediateCatchEvent>
    <bpmn:endEvent id="shipped" name="Shipped" />
    <bpmn:endEvent id="rejected" name="Rejected" />
    <bpmn:sequenceFlow id="f1" sourceRef="start1" targetRef="review" />
    <bpmn:sequenceFlow id="f2" sourceRef="review" targetRef="gw" />
    <bpmn:sequenceFlow id="to_payment" sourceRef="gw" targetRef="wait_payment">
      <bpmn:conditionExpression xsi:type="bpmn:tFormalExpression">approved == true</bpmn:conditionExpression>
    </bpmn:sequenceFlow>
    <bpmn:sequenceFlow id="to_rejected" sourceRef="gw" targetRef="rejected" />
    <bpmn:sequenceFlow id="f3" sourceRef="wait_payment" targetRef="cooldown" />
    <bpmn:sequenceFlow id="f4" sourceRef="cooldown" targetRef="shipped" />
  </bpmn:process>
  <bpmndi:BPMNDiagram id="diagram">
    <bpmndi:BPMNPlane id="plane" bpmnElement="order" />
  </bpmndi:BPMNDiagram>
</bpmn:definitions>
"""
