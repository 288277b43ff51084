"""System directives for the generative UI relay."""

from __future__ import annotations

import json
from typing import Any


def generative_ui_system_prompt(language: str) -> str:
	"""Return the base directive for the requested language."""
	if language == "ar":
		return (
			"أنت مساعد واجهة مستخدم توليدية (Generative UI). أعد مواصفات C1 (DSL) بصيغة JSON صحيحة فقط. "
			"اجعل الواجهة مختصرة وعملية، وتجنب البيانات الكبيرة أو المحتوى المطول. "
			"لا تضمن مكونات Image إلا إذا كان لديك URL حقيقي للصورة."
		)
	return (
		"You are a Generative UI assistant. Return a valid C1 DSL JSON spec only. "
		"Keep UIs concise and practical, avoid large datasets or verbose content. "
		"Do not include Image components unless you have a real image URL."
	)


def previous_state_directive(language: str, previous_state: Any) -> str:
	"""Return the directive asking the model to modify an existing UI."""
	state = json.dumps(previous_state, indent=2, ensure_ascii=False)
	if language == "ar":
		return (
			f"ملاحظة: أنت تقوم بتحديث واجهة مستخدم موجودة. الحالة السابقة: {state}\n"
			"قم بتعديل هذه الواجهة بناءً على طلب المستخدم، مع الحفاظ على البنية العامة إلا إذا طلب المستخدم تغييرها بشكل جذري."
		)
	return (
		f"Context: You are updating an existing UI component. Previous state: {state}\n"
		"Modify this UI based on the user's request, maintaining the overall structure unless the user asks for a radical change."
	)
