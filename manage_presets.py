import tkinter as tk
from tkinter import messagebox

from preset_admin import PresetAdminFlow, preset_accessory, preset_subtitle


def confirm_dialog(title, message):
    return messagebox.askyesno(title, message, icon=messagebox.WARNING)


class ManagePresetsWindow:
    """List of presets with add / edit / delete / duplicate / copy actions."""

    def __init__(self, root, store, notifier):
        self.flow = PresetAdminFlow(store, notifier, confirm=confirm_dialog)
        self.root = root
        self.window = tk.Toplevel(root)
        self.window.title("Manage Presets")
        self.window.attributes('-topmost', True)
        self.visible_presets = []
        self.editing = None

        self.setup_ui()
        self.reload()

    def setup_ui(self):
        """Set up the user interface"""
        screen_width = self.window.winfo_screenwidth()
        screen_height = self.window.winfo_screenheight()
        window_width = 560
        window_height = 420
        position_x = (screen_width - window_width) // 2
        position_y = (screen_height - window_height) // 3
        self.window.geometry(f"{window_width}x{window_height}+{position_x}+{position_y}")

        self.main_frame = tk.Frame(self.window)
        self.main_frame.pack(fill=tk.BOTH, expand=True, padx=10, pady=10)

        # List view
        self.list_frame = tk.Frame(self.main_frame)
        self.list_frame.pack(fill=tk.BOTH, expand=True)

        self.search_var = tk.StringVar()
        self.search_var.trace_add("write", lambda *_: self.render_list())
        search_entry = tk.Entry(self.list_frame, textvariable=self.search_var, font=("Arial", 11))
        search_entry.pack(fill=tk.X, pady=(0, 5))

        self.listbox = tk.Listbox(self.list_frame, font=("Arial", 10), activestyle="dotbox")
        self.listbox.pack(fill=tk.BOTH, expand=True)
        self.listbox.bind("<Double-Button-1>", lambda e: self.show_edit_form())

        button_frame = tk.Frame(self.list_frame)
        button_frame.pack(fill=tk.X, pady=5)
        for label, command in (
            ("Add New Preset", self.show_add_form),
            ("Edit", self.show_edit_form),
            ("Delete", self.delete_selected),
            ("Duplicate", self.duplicate_selected),
            ("Copy Prompt", self.copy_selected),
        ):
            tk.Button(button_frame, text=label, command=command).pack(side=tk.LEFT, padx=3)

        # Add / edit form, hidden until needed
        self.form_frame = tk.Frame(self.main_frame)

        tk.Label(self.form_frame, text="Name").pack(anchor="w")
        self.name_entry = tk.Entry(self.form_frame, font=("Arial", 11))
        self.name_entry.pack(fill=tk.X)
        self.name_error = tk.Label(self.form_frame, text="", fg="red", anchor="w")
        self.name_error.pack(fill=tk.X)

        tk.Label(self.form_frame, text="Prompt").pack(anchor="w")
        self.prompt_text = tk.Text(self.form_frame, height=8, font=("Arial", 11), wrap=tk.WORD)
        self.prompt_text.pack(fill=tk.BOTH, expand=True)
        self.prompt_error = tk.Label(self.form_frame, text="", fg="red", anchor="w")
        self.prompt_error.pack(fill=tk.X)

        form_buttons = tk.Frame(self.form_frame)
        form_buttons.pack(fill=tk.X, pady=5)
        self.submit_button = tk.Button(form_buttons, text="Add Preset", command=self.submit_form)
        self.submit_button.pack(side=tk.LEFT, padx=5)
        tk.Button(form_buttons, text="Cancel", command=self.show_list).pack(side=tk.LEFT, padx=5)

        self.window.bind("<Escape>", lambda e: self.show_list())

    # --------------------- list view --------------------- #

    def reload(self):
        self.flow.refresh()
        self.render_list()

    def render_list(self):
        self.visible_presets = self.flow.filtered(self.search_var.get())
        self.listbox.delete(0, tk.END)
        for preset in self.visible_presets:
            self.listbox.insert(
                tk.END, f"{preset.name}  [{preset_accessory(preset)}]  {preset_subtitle(preset)}"
            )

    def selected_preset(self):
        selection = self.listbox.curselection()
        if not selection:
            return None
        return self.visible_presets[selection[0]]

    def show_list(self):
        self.form_frame.pack_forget()
        self.list_frame.pack(fill=tk.BOTH, expand=True)
        self.editing = None
        self.render_list()

    def delete_selected(self):
        preset = self.selected_preset()
        if preset and self.flow.delete(preset):
            self.render_list()

    def duplicate_selected(self):
        preset = self.selected_preset()
        if preset and self.flow.duplicate(preset):
            self.render_list()

    def copy_selected(self):
        preset = self.selected_preset()
        if preset:
            self.flow.copy_prompt(preset)

    # --------------------- form view --------------------- #

    def show_add_form(self):
        self._open_form(None)

    def show_edit_form(self):
        preset = self.selected_preset()
        if preset:
            self._open_form(preset)

    def _open_form(self, preset):
        self.editing = preset
        self.list_frame.pack_forget()
        self.form_frame.pack(fill=tk.BOTH, expand=True)
        self.name_entry.delete(0, tk.END)
        self.prompt_text.delete("1.0", tk.END)
        self.name_error.config(text="")
        self.prompt_error.config(text="")
        if preset:
            self.name_entry.insert(0, preset.name)
            self.prompt_text.insert("1.0", preset.prompt)
            self.submit_button.config(text="Update Preset")
        else:
            self.submit_button.config(text="Add Preset")
        self.name_entry.focus_set()

    def submit_form(self):
        name = self.name_entry.get().strip()
        prompt = self.prompt_text.get("1.0", tk.END).strip()
        if self.editing:
            errors = self.flow.edit(self.editing, name, prompt)
        else:
            errors = self.flow.add(name, prompt)

        self.name_error.config(text=errors.get("name", ""))
        self.prompt_error.config(text=errors.get("prompt", ""))
        if not errors:
            self.show_list()
