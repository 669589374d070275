from __future__ import annotations

import os
from datetime import date

import requests

import dash
from dash import Dash, dcc, html, Input, Output, State
import plotly.graph_objects as go
import dash_bootstrap_components as dbc

BACKEND_URL = os.environ.get("BACKEND_URL", "http://127.0.0.1:8000")

# One API session (cookie jar) per dashboard process.
api = requests.Session()

external_stylesheets = [dbc.themes.MINTY]
app: Dash = dash.Dash(__name__, external_stylesheets=external_stylesheets, suppress_callback_exceptions=True)
app.title = "Dompet Dashboard"

MARGIN = dict(l=20, r=20, t=20, b=20)


def navbar() -> dbc.Navbar:
	return dbc.Navbar(
		[
			dbc.NavbarBrand("DOMPET", class_name="ms-2 fw-bold"),
			dbc.Nav(
				[
					dbc.Button("API DOCS", href=f"{BACKEND_URL}/docs", color="light", outline=True, class_name="me-2", external_link=True),
				],
				class_name="ms-auto",
			),
		],
		color="primary",
		dark=True,
		class_name="mb-4 shadow",
	)


controls = dbc.Card(
	dbc.CardBody([
		dbc.Row([
			dbc.Col([
				dbc.Label("Email"),
				dbc.Input(id="email", type="email", placeholder="you@example.com"),
			], md=3),
			dbc.Col([
				dbc.Label("Password"),
				dbc.Input(id="password", type="password"),
			], md=2),
			dbc.Col([
				dbc.Label("Bulan"),
				dbc.Input(id="month", type="month", value=date.today().strftime("%Y-%m"), debounce=True),
			], md=2),
			dbc.Col([
				dbc.Button("Login", id="login", color="success", class_name="mt-4 me-2"),
				dbc.Button("Refresh", id="refresh", color="info", class_name="mt-4"),
			], md="auto"),
		])
	]), class_name="mb-3"
)


def build_tabs() -> dbc.Tabs:
	return dbc.Tabs(
		[
			dbc.Tab(label="Saldo", tab_id="accounts"),
			dbc.Tab(label="Cash Flow", tab_id="cashflow"),
			dbc.Tab(label="Budget", tab_id="budgets"),
			dbc.Tab(label="Pengeluaran", tab_id="expenses"),
			dbc.Tab(label="Portfolio", tab_id="portfolio"),
		], id="tabs", active_tab="accounts"
	)


toasts = html.Div([
	dbc.Toast(id="toast", header="Info", is_open=False, dismissable=True, duration=3000, icon="primary", style={"position": "fixed", "top": 70, "right": 20, "zIndex": 1060}),
])


app.layout = dbc.Container([
	navbar(),
	controls,
	build_tabs(),
	dbc.Alert(id="error", color="danger", is_open=False, dismissable=True, class_name="mt-2"),
	toasts,
	dcc.Store(id="logged-in", data=False),
	dbc.Card(dbc.CardBody([
		dcc.Loading(id="loading", type="cube", children=html.Div(id="content"))
	]), class_name="mt-3"),
], fluid=True)


# Figures
def accounts_figure(accounts: list[dict]) -> go.Figure:
	fig = go.Figure()
	fig.add_trace(go.Bar(x=[a["name"] for a in accounts], y=[a["balance"] for a in accounts], marker_color="#00b894", name="Saldo"))
	fig.update_layout(template="plotly", margin=MARGIN)
	return fig


def cashflow_figure(points: list[dict]) -> go.Figure:
	fig = go.Figure()
	x = [p["date"] for p in points]
	fig.add_trace(go.Bar(x=x, y=[p["income"] for p in points], name="Pemasukan", marker_color="#0984e3"))
	fig.add_trace(go.Bar(x=x, y=[-p["expense"] for p in points], name="Pengeluaran", marker_color="#d63031"))
	fig.add_trace(go.Scatter(x=x, y=[p["net"] for p in points], name="Net", mode="lines+markers", line=dict(color="#fdcb6e")))
	fig.update_layout(barmode="relative", template="plotly", margin=MARGIN)
	return fig


def budgets_figure(budgets: list[dict]) -> go.Figure:
	names = [b["name"] for b in budgets]
	fig = go.Figure()
	fig.add_trace(go.Bar(y=names, x=[b["spent"] for b in budgets], orientation="h", name="Terpakai", marker_color="#d63031"))
	fig.add_trace(go.Bar(y=names, x=[b["remaining"] for b in budgets], orientation="h", name="Sisa", marker_color="#b2bec3"))
	fig.update_layout(barmode="stack", template="plotly", margin=MARGIN)
	return fig


def categories_figure(summary: dict) -> go.Figure:
	totals = summary.get("categoryTotals") or {}
	fig = go.Figure()
	fig.add_trace(go.Pie(labels=list(totals.keys()), values=list(totals.values()), hole=0.3))
	fig.update_layout(template="plotly", margin=MARGIN)
	return fig


def allocation_figure(slices: list[dict]) -> go.Figure:
	fig = go.Figure()
	fig.add_trace(go.Pie(labels=[s["label"] for s in slices], values=[s["value"] for s in slices], hole=0.3))
	fig.update_layout(template="plotly", margin=MARGIN)
	return fig


def _fetch_json(method: str, path: str, **kwargs):
	url = f"{BACKEND_URL}{path}"
	resp = api.request(method, url, timeout=30, **kwargs)
	resp.raise_for_status()
	return resp.json()


@app.callback(Output("logged-in", "data"), Output("toast", "is_open"), Output("toast", "children"), Input("login", "n_clicks"), State("email", "value"), State("password", "value"), prevent_initial_call=True)
def login(n, email, password):
	try:
		user = _fetch_json("POST", "/api/auth/login", json={"email": email, "password": password})
		return True, True, f"Masuk sebagai {user.get('name') or user['email']}."
	except Exception as e:
		return False, True, f"Login gagal: {e}"


def _empty(message: str):
	return html.Div(dbc.Alert(message, color="secondary")), False, ""


@app.callback(Output("content", "children"), Output("error", "is_open"), Output("error", "children"), [Input("tabs", "active_tab"), Input("logged-in", "data"), Input("month", "value"), Input("refresh", "n_clicks")])
def render_content(tab: str, logged_in: bool, month: str, _n):
	if not logged_in:
		return html.Div(dbc.Alert("Belum login. Masukkan email dan password.", color="warning")), False, ""
	try:
		if tab == "accounts":
			accounts = _fetch_json("GET", "/api/account-balance")
			total = sum(a["balance"] for a in accounts)
			return html.Div([html.H5(f"Total saldo: {total:,.0f}"), dcc.Graph(figure=accounts_figure(accounts))]), False, ""
		elif tab == "cashflow":
			points = _fetch_json("GET", "/api/cashflow")
			if points:
				return dcc.Graph(figure=cashflow_figure(points)), False, ""
			return _empty("Belum ada data. Tambahkan pemasukan atau pengeluaran.")
		elif tab == "budgets":
			data = _fetch_json("GET", "/api/budgets", params={"month": month})
			if data["budgets"]:
				return dcc.Graph(figure=budgets_figure(data["budgets"])), False, ""
			return _empty(f"Belum ada budget untuk {data['month']}.")
		elif tab == "expenses":
			summary = _fetch_json("GET", "/api/expenses/summary", params={"month": month})
			if summary["count"]:
				header = html.H5(f"Total: {summary['total']:,.0f} | Rata-rata: {summary['average']:,.0f} | Terbesar: {summary['topCategory']}")
				return html.Div([header, dcc.Graph(figure=categories_figure(summary))]), False, ""
			return _empty("Belum ada pengeluaran bulan ini.")
		elif tab == "portfolio":
			data = _fetch_json("GET", "/api/assets/portfolio")
			if data["allocation"]:
				header = html.H5(f"Nilai: {data['totalValue']:,.0f} | Profit: {data['totalProfit']:,.0f} ({data['profitPercentage']:.2f}%)")
				return html.Div([header, dcc.Graph(figure=allocation_figure(data["allocation"]))]), False, ""
			return _empty("Belum ada aset.")
		return html.Div("Unknown tab"), False, ""
	except Exception as e:
		return html.Div(), True, f"Error: {e}"


if __name__ == "__main__":
	app.run(host="0.0.0.0", port=8050, debug=True)
