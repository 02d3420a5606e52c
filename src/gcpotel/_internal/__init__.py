"""Internal building blocks shared by the metric and trace exporters."""
