#!/usr/bin/env python3
"""
给药记录 API 的冒烟脚本：走一遍 "两个照护者先后记录同一药品" 的流程。

使用方法:
1. 确保Django服务器正在运行: python manage.py runserver
2. 数据库里已有一个药品（Medication），记下它的 id 和 care_plan_id
3. 运行此脚本: python smoke_administration_api.py
"""

from datetime import datetime, timedelta, timezone

import requests

# API配置
BASE_URL = "http://localhost:8000/api"


def banner(title):
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60)


def post_administration(medication_id, caregiver_id, role, administered_at, resolution=None):
    url = f"{BASE_URL}/medications/{medication_id}/administrations/"
    payload = {
        "administered_at": administered_at.isoformat(),
        "caregiver_id": caregiver_id,
        "role": role,
    }
    if resolution:
        payload["resolution"] = resolution

    print(f"POST {url}")
    response = requests.post(url, json=payload, timeout=10)
    print(f"响应状态码: {response.status_code}")
    return response.status_code, response.json()


def show_doses(care_plan_id, on_date):
    url = f"{BASE_URL}/care-plans/{care_plan_id}/doses/"
    response = requests.get(url, params={"date": on_date.isoformat()}, timeout=10)
    data = response.json()

    print(f"GET {url} → {response.status_code}")
    for dose in data.get("doses", []):
        mark = "✅" if dose["administered"] else "⬜"
        print(f"  {mark} {dose['time']} {dose['slot']:<10} {dose['medication_id']}")


def run_flow(medication_id, care_plan_id):
    now = datetime.now(timezone.utc).replace(microsecond=0)

    banner("1. 今天的预期 dose")
    show_doses(care_plan_id, now.date())

    banner("2. 家属记录一次给药")
    status, body = post_administration(medication_id, "smoke-family", "family", now - timedelta(minutes=90))
    print(f"outcome: {body.get('outcome')} {body.get('message', '')}")

    banner("3. 护工在窗口内再记录一次 → 应报告冲突")
    status, body = post_administration(medication_id, "smoke-caregiver", "professional", now)
    if body.get("outcome") != "conflicts_found":
        print(f"\n❌ 预期冲突，实际: {body}")
        return
    print(f"⚠️  {body['message']}")
    print(f"可选策略: {', '.join(body['resolutions'])}")

    banner("4. 选择 dual_entry 重新提交")
    status, body = post_administration(
        medication_id, "smoke-caregiver", "professional", now,
        resolution={"method": "dual_entry", "notes": "smoke test"},
    )
    for record in body.get("records", []):
        print(f"  - {record['id']} by {record['administered_by']} conflict_of={record['conflict_of']}")

    banner("5. 给药历史")
    response = requests.get(
        f"{BASE_URL}/medications/{medication_id}/administrations/",
        params={"start": (now - timedelta(hours=6)).isoformat(), "end": now.isoformat()},
        timeout=10,
    )
    print(f"共 {response.json().get('count')} 条记录")

    banner("6. 再看一次今天的 dose")
    show_doses(care_plan_id, now.date())


def main():
    banner("给药记录 API 冒烟脚本")

    print("\n请输入药品 ID (UUID):")
    medication_id = input("> ").strip()
    print("请输入 care plan ID:")
    care_plan_id = input("> ").strip()

    if not medication_id or not care_plan_id:
        print("\n跳过：需要药品 ID 和 care plan ID")
        return

    try:
        run_flow(medication_id, care_plan_id)
    except requests.exceptions.ConnectionError:
        print("\n❌ 连接错误: 无法连接到服务器")
        print("请确保Django服务器正在运行: python manage.py runserver")

    banner("测试完成")


if __name__ == "__main__":
    main()
